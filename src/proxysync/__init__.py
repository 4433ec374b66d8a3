"""
proxysync: settings sync and backup engine for proxy configurations.

Keeps a device's proxy servers, subscriptions, rule profiles and options
in step with a remote copy (platform sync store or a WebDAV file), and
turns untrusted backup files back into a consistent configuration.
Secrets and fetched subscription content never leave the device.
"""

import os

__version__ = "1.2.0"

PROXYSYNC_HOME = os.environ.get("PROXYSYNC_HOME", "~/.proxysync")
