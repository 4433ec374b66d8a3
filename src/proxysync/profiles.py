"""
Profile operations: built-in profiles, type capabilities, copying.
"""

from __future__ import annotations

import copy
from typing import Any, Mapping, Union

from .models import ProfileType, ProfileTypeConfig, SmartProfile

PROFILE_ID_SYSTEM_PROXY = "InternalProfile_SystemProxy"
PROFILE_ID_DIRECT = "InternalProfile_Direct"
PROFILE_ID_SMART_RULES = "InternalProfile_SmartRules"
PROFILE_ID_ALWAYS_ENABLED = "InternalProfile_AlwaysEnabled"
PROFILE_ID_IGNORE_FAILURE_RULES = "InternalProfile_IgnoreFailureRules"

_TYPE_CONFIGS: dict[ProfileType, dict[str, bool]] = {
    ProfileType.SYSTEM_PROXY: {
        "builtin": True,
        "editable": False,
        "selectable": True,
    },
    ProfileType.DIRECT: {
        "builtin": True,
        "editable": False,
        "selectable": True,
    },
    ProfileType.SMART_RULES: {
        "builtin": True,
        "editable": True,
        "selectable": True,
        "supports_subscriptions": True,
        "supports_profile_proxy": True,
        "custom_proxy_per_rule": True,
        "can_be_disabled": True,
        "supports_rule_action_whitelist": True,
    },
    ProfileType.ALWAYS_ENABLED_BYPASS_RULES: {
        "builtin": True,
        "editable": True,
        "selectable": True,
        "supports_subscriptions": True,
        "supports_profile_proxy": True,
        "custom_proxy_per_rule": True,
        "can_be_disabled": True,
        "supports_rule_action_whitelist": True,
        "default_rule_action_is_whitelist": True,
    },
    ProfileType.IGNORE_FAILURE_RULES: {
        "builtin": True,
        "editable": True,
        "selectable": False,
        "supports_profile_proxy": True,
        "can_be_disabled": True,
        "supports_rule_action_whitelist": True,
    },
}

# (profile id, type, display name) of the profiles every config carries
BUILTIN_PROFILES: list[tuple[str, ProfileType, str]] = [
    (PROFILE_ID_DIRECT, ProfileType.DIRECT, "Direct (No Proxy)"),
    (PROFILE_ID_SYSTEM_PROXY, ProfileType.SYSTEM_PROXY, "System Proxy"),
    (PROFILE_ID_SMART_RULES, ProfileType.SMART_RULES, "Smart Proxy"),
    (PROFILE_ID_ALWAYS_ENABLED, ProfileType.ALWAYS_ENABLED_BYPASS_RULES, "Always Enable"),
    (PROFILE_ID_IGNORE_FAILURE_RULES, ProfileType.IGNORE_FAILURE_RULES, "Ignore Failure Rules"),
]


def get_profile_type_config(profile_type: ProfileType) -> ProfileTypeConfig:
    """Return a fresh capability record for a profile type."""
    return ProfileTypeConfig(**_TYPE_CONFIGS.get(profile_type, {}))


def reset_profile_type_config(profile: SmartProfile) -> None:
    """Overwrite the profile's type config with the current defaults."""
    profile.profile_type_config = get_profile_type_config(profile.profile_type)


def create_builtin_profile(profile_id: str, profile_type: ProfileType, name: str) -> SmartProfile:
    profile = SmartProfile(profile_id=profile_id, profile_type=profile_type, name=name)
    reset_profile_type_config(profile)
    return profile


def get_builtin_profiles() -> list[SmartProfile]:
    """Fresh copies of all built-in profiles, in display order."""
    return [create_builtin_profile(*entry) for entry in BUILTIN_PROFILES]


def copy_smart_profile(
    source: Union[SmartProfile, Mapping[str, Any]],
    target: SmartProfile,
    deep: bool = True,
) -> SmartProfile:
    """Copy profile fields from ``source`` onto ``target``.

    ``source`` may be another profile or an untrusted mapping from a
    backup; only known fields are copied and each one is validated on
    assignment.

    Args:
        source: Profile or camelCase/snake_case mapping.
        target: Profile to fill in.
        deep: Deep-copy nested lists instead of sharing them.

    Returns:
        SmartProfile: ``target``, for chaining.
    """
    if isinstance(source, SmartProfile):
        values = {name: getattr(source, name) for name in SmartProfile.model_fields}
    else:
        values = {}
        for name, field in SmartProfile.model_fields.items():
            key = field.alias or name
            if key in source:
                values[name] = source[key]
            elif name in source:
                values[name] = source[name]

    if deep:
        values = copy.deepcopy(values)

    for name, value in values.items():
        setattr(target, name, value)
    return target
