"""
Pydantic models for the proxy configuration.

Attributes are snake_case in Python. On the wire (sync payloads,
WebDAV files, backups) every key is camelCase, e.g. ``syncHash`` or
``proxyServerSubscriptions``. Unknown keys are dropped on decode.
"""

from __future__ import annotations

import uuid
from enum import IntEnum
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from . import __version__

KNOWN_PROTOCOLS = {"HTTP", "HTTPS", "SOCKS4", "SOCKS5"}
DEFAULT_WEBDAV_FILENAME = "smartproxy_settings.json"


def new_unique_id() -> str:
    """Return a fresh opaque id (also used for sync hashes)."""
    return uuid.uuid4().hex


def _coerce_id(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _empty_if_none(value: Any) -> Any:
    return "" if value is None else value


def _list_if_none(value: Any) -> Any:
    return [] if value is None else value


class SettingsModel(BaseModel):
    """Base for every configuration entity."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys, ready for ``json.dumps``."""
        return self.model_dump(mode="json", by_alias=True)

    def copy_from(self, source: Mapping[str, Any]) -> list[str]:
        """Copy known field keys from an untrusted mapping, one by one.

        Unknown keys are ignored. On models with ``validate_assignment``
        a key whose value does not validate keeps the current value.

        Args:
            source: Mapping with camelCase or snake_case keys.

        Returns:
            list[str]: Keys that were present but rejected.
        """
        rejected: list[str] = []
        for name, field in type(self).model_fields.items():
            key = field.alias or name
            if key in source:
                value = source[key]
            elif name in source:
                value = source[name]
            else:
                continue
            if value is None:
                continue
            try:
                setattr(self, name, value)
            except PydanticValidationError:
                rejected.append(key)
        return rejected


class ProfileType(IntEnum):
    """Kinds of proxy profile."""

    SYSTEM_PROXY = 1
    DIRECT = 2
    SMART_RULES = 3
    ALWAYS_ENABLED_BYPASS_RULES = 4
    IGNORE_FAILURE_RULES = 5


class ProxyRuleType(IntEnum):
    """How a rule matches a request."""

    MATCH_PATTERN_HOST = 0
    MATCH_PATTERN_URL = 1
    REGEX_HOST = 2
    REGEX_URL = 3
    EXACT = 4
    DOMAIN_SUBDOMAIN = 5


class ProxyServer(SettingsModel):
    """A proxy server the user configured or a subscription supplied."""

    id: str = Field(default_factory=new_unique_id)
    name: str = ""
    host: str = ""
    port: int = 0
    protocol: str = Field(
        default="",
        validation_alias=AliasChoices("protocol", "type"),
    )
    username: Optional[str] = None
    password: Optional[str] = None
    proxy_dns: bool = True
    failover_timeout: Optional[int] = None
    order: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_or_new(cls, value: Any) -> Any:
        if value is None or value == "":
            return new_unique_id()
        return _coerce_id(value)

    @field_validator("name", "host", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _empty_if_none(value)

    @field_validator("port", mode="before")
    @classmethod
    def _port(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @field_validator("protocol", mode="before")
    @classmethod
    def _protocol(cls, value: Any) -> Any:
        if value is None:
            return ""
        return str(value).strip().upper()

    def is_valid(self) -> bool:
        """Basic structural check: host, known protocol, sane port."""
        if not self.host.strip():
            return False
        if self.protocol not in KNOWN_PROTOCOLS:
            return False
        return 0 < self.port <= 65535


class ProxyServerFromSubscription(ProxyServer):
    """A subscription server annotated with where it came from."""

    subscription_name: str = ""


class SubscriptionProxyRule(SettingsModel):
    """A rule fetched from a rules subscription."""

    name: str = ""
    regex: str = ""


class ProxyRule(SettingsModel):
    """A user rule inside a smart profile."""

    rule_id: str = Field(default_factory=new_unique_id)
    rule_type: int = ProxyRuleType.MATCH_PATTERN_HOST
    host_name: str = ""
    rule_pattern: str = ""
    rule_search: str = ""
    rule_regex: str = ""
    rule_exact: str = ""
    whitelist: bool = False
    enabled: bool = True
    proxy_server_id: Optional[str] = None
    proxy: Optional[ProxyServer] = None

    @field_validator("rule_id", mode="before")
    @classmethod
    def _rule_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return new_unique_id()
        return _coerce_id(value)

    @field_validator(
        "host_name", "rule_pattern", "rule_search", "rule_regex", "rule_exact",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _empty_if_none(value)

    @field_validator("proxy_server_id", mode="before")
    @classmethod
    def _server_id(cls, value: Any) -> Any:
        return _coerce_id(value) or None


class ProxyRulesSubscription(SettingsModel):
    """A rules subscription. Fetched rule lists stay on the device."""

    id: str = Field(default_factory=new_unique_id)
    name: str = ""
    url: str = ""
    enabled: bool = False
    refresh_rate: int = 0
    format: str = ""
    obfuscation: str = ""
    total_count: int = 0
    proxy_rules: list[SubscriptionProxyRule] = Field(default_factory=list)
    whitelist_rules: list[SubscriptionProxyRule] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_or_new(cls, value: Any) -> Any:
        if value is None or value == "":
            return new_unique_id()
        return _coerce_id(value)

    @field_validator("name", "url", "format", "obfuscation", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _empty_if_none(value)

    @field_validator("proxy_rules", "whitelist_rules", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> Any:
        return _list_if_none(value)


class ProxyServerSubscription(SettingsModel):
    """A server subscription, identified across devices by name + url."""

    model_config = ConfigDict(validate_assignment=True)

    name: str = ""
    url: str = ""
    enabled: bool = False
    refresh_rate: int = 0
    format: str = ""
    obfuscation: str = ""
    username: Optional[str] = None
    password: Optional[str] = None
    total_count: int = 0
    proxies: list[ProxyServer] = Field(default_factory=list)

    @field_validator("name", "url", "format", "obfuscation", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _empty_if_none(value)

    @field_validator("proxies", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> Any:
        return _list_if_none(value)


class ProfileTypeConfig(SettingsModel):
    """Capabilities of a profile type."""

    builtin: bool = False
    editable: bool = False
    selectable: bool = True
    supports_subscriptions: bool = False
    supports_profile_proxy: bool = False
    custom_proxy_per_rule: bool = False
    can_be_disabled: bool = False
    supports_rule_action_whitelist: bool = False
    default_rule_action_is_whitelist: bool = False


class SmartProfile(SettingsModel):
    """A rule profile."""

    model_config = ConfigDict(validate_assignment=True)

    profile_id: str = Field(default_factory=new_unique_id)
    profile_type: ProfileType = ProfileType.SMART_RULES
    profile_type_config: ProfileTypeConfig = Field(default_factory=ProfileTypeConfig)
    name: str = ""
    enabled: bool = True
    profile_proxy_server_id: Optional[str] = None
    proxy_rules: list[ProxyRule] = Field(default_factory=list)
    rules_subscriptions: list[ProxyRulesSubscription] = Field(default_factory=list)

    @field_validator("profile_id", mode="before")
    @classmethod
    def _id_or_new(cls, value: Any) -> Any:
        if value is None or value == "":
            return new_unique_id()
        return _coerce_id(value)

    @field_validator("profile_proxy_server_id", mode="before")
    @classmethod
    def _server_id(cls, value: Any) -> Any:
        return _coerce_id(value) or None

    @field_validator("name", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _empty_if_none(value)

    @field_validator("proxy_rules", "rules_subscriptions", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> Any:
        return _list_if_none(value)

    @field_validator("profile_type_config", mode="before")
    @classmethod
    def _type_config(cls, value: Any) -> Any:
        return ProfileTypeConfig() if value is None else value


class UpdateInfo(SettingsModel):
    """Last known release information."""

    version_name: str = ""
    download_link: str = ""
    update_is_available: bool = False


class GeneralOptions(SettingsModel):
    """Flat record of user preferences."""

    model_config = ConfigDict(validate_assignment=True)

    sync_settings: bool = False
    sync_active_profile: bool = True
    sync_active_proxy: bool = True
    sync_web_dav_server_enabled: bool = False
    sync_web_dav_server_url: str = ""
    sync_web_dav_backup_filename: str = ""
    sync_web_dav_server_user: str = ""
    sync_web_dav_server_password: str = ""
    detect_request_failures: bool = True
    refresh_tab_on_config_changes: bool = False
    proxy_per_origin: bool = True
    enable_diagnostics: bool = False
    display_applied_proxy_on_badge: bool = True
    display_matched_rule_on_badge: bool = True
    display_failed_on_badge: bool = True
    theme_name: str = ""
    theme_name_alter: str = ""

    @field_validator(
        "sync_web_dav_server_url",
        "sync_web_dav_backup_filename",
        "sync_web_dav_server_user",
        "sync_web_dav_server_password",
        "theme_name",
        "theme_name_alter",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _empty_if_none(value)


class SettingsConfig(SettingsModel):
    """The root configuration aggregate."""

    version: str = __version__
    config_version: Optional[str] = None
    sync_hash: Optional[str] = None
    first_run: bool = False
    options: GeneralOptions = Field(default_factory=GeneralOptions)
    default_proxy_server_id: Optional[str] = None
    active_profile_id: Optional[str] = None
    proxy_servers: list[ProxyServer] = Field(default_factory=list)
    proxy_server_subscriptions: list[ProxyServerSubscription] = Field(default_factory=list)
    proxy_profiles: list[SmartProfile] = Field(default_factory=list)
    update_info: UpdateInfo = Field(default_factory=UpdateInfo)

    @field_validator("version", mode="before")
    @classmethod
    def _version(cls, value: Any) -> Any:
        if value is None:
            return __version__
        return _coerce_id(value)

    @field_validator(
        "config_version", "sync_hash", "default_proxy_server_id", "active_profile_id",
        mode="before",
    )
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _coerce_id(value) or None

    @field_validator(
        "proxy_servers", "proxy_server_subscriptions", "proxy_profiles",
        mode="before",
    )
    @classmethod
    def _lists(cls, value: Any) -> Any:
        return _list_if_none(value)

    @field_validator("options", mode="before")
    @classmethod
    def _options(cls, value: Any) -> Any:
        return GeneralOptions() if value is None else value

    @field_validator("update_info", mode="before")
    @classmethod
    def _update_info(cls, value: Any) -> Any:
        return UpdateInfo() if value is None else value

    def clone(self) -> "SettingsConfig":
        """Deep copy that shares nothing with this instance."""
        return self.model_copy(deep=True)
