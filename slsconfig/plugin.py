"""Plugin inputs for Logtail collection configurations."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

PLUGIN_INPUT_TYPE_DOCKER_STDOUT = "service_docker_stdout"
PLUGIN_INPUT_TYPE_CANAL = "service_canal"


def _to_json_value(value: Any) -> Any:
    """Turn a value holding config objects into plain JSON-compatible data."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, Mapping):
        return {str(key): _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value


def _mapping_or_none(value: dict[str, str] | None) -> dict[str, str] | None:
    return None if value is None else dict(value)


@dataclass
class PluginInputItem:
    """One plugin of a pipeline: its type name and its settings."""

    type: str = ""
    detail: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "detail": _to_json_value(self.detail)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PluginInputItem:
        if not isinstance(data, Mapping):
            raise TypeError(f"cannot decode {type(data).__name__} into PluginInputItem")
        plugin_type = data.get("type")
        if plugin_type is None:
            plugin_type = ""
        elif not isinstance(plugin_type, str):
            raise TypeError(f"plugin type must be a string, not {plugin_type!r}")
        return cls(type=plugin_type, detail=copy.deepcopy(data.get("detail")))


def create_plugin_input_item(plugin_type: str, detail: Any) -> PluginInputItem:
    """Wrap plugin settings into an item of the given plugin type."""
    return PluginInputItem(type=plugin_type, detail=detail)


@dataclass
class LogConfigPluginInput:
    """The plugin pipeline of a plugin collection config."""

    inputs: list[PluginInputItem] = field(default_factory=list)
    processors: list[PluginInputItem] = field(default_factory=list)
    aggregators: list[PluginInputItem] = field(default_factory=list)
    flushers: list[PluginInputItem] = field(default_factory=list)

    _OPTIONAL: ClassVar[tuple[str, ...]] = ("processors", "aggregators", "flushers")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"inputs": [item.to_dict() for item in self.inputs]}
        for name in self._OPTIONAL:
            items = getattr(self, name)
            if items:
                result[name] = [item.to_dict() for item in items]
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LogConfigPluginInput:
        if not isinstance(data, Mapping):
            raise TypeError(f"cannot decode {type(data).__name__} into LogConfigPluginInput")
        decoded: dict[str, list[PluginInputItem]] = {}
        for name in ("inputs", *cls._OPTIONAL):
            items = data.get(name)
            if items is None:
                continue
            if not isinstance(items, list):
                raise TypeError(f"plugin field {name!r} must be a list")
            decoded[name] = [PluginInputItem.from_dict(item) for item in items]
        return cls(**decoded)


@dataclass
class ConfigPluginCanal:
    """Settings of the MySQL binlog (canal) input plugin."""

    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    flavor: str = ""
    server_id: int = 0
    include_tables: list[str] | None = None
    exclude_tables: list[str] | None = None
    start_bin_name: str = ""
    start_bin_log_pos: int = 0
    heart_beat_period: int = 0
    read_timeout: int = 0
    enable_ddl: bool = False
    enable_xid: bool = False
    enable_gtid: bool = False
    enable_insert: bool = False
    enable_update: bool = False
    enable_delete: bool = False
    text_to_string: bool = False
    start_from_begining: bool = False
    charset: str = ""

    _KEYS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("host", "Host"),
        ("port", "Port"),
        ("user", "User"),
        ("password", "Password"),
        ("flavor", "Flavor"),
        ("server_id", "ServerID"),
        ("include_tables", "IncludeTables"),
        ("exclude_tables", "ExcludeTables"),
        ("start_bin_name", "StartBinName"),
        ("start_bin_log_pos", "StartBinLogPos"),
        ("heart_beat_period", "HeartBeatPeriod"),
        ("read_timeout", "ReadTimeout"),
        ("enable_ddl", "EnableDDL"),
        ("enable_xid", "EnableXID"),
        ("enable_gtid", "EnableGTID"),
        ("enable_insert", "EnableInsert"),
        ("enable_update", "EnableUpdate"),
        ("enable_delete", "EnableDelete"),
        ("text_to_string", "TextToString"),
        ("start_from_begining", "StartFromBegining"),
        ("charset", "Charset"),
    )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for attr, key in self._KEYS:
            value = getattr(self, attr)
            result[key] = list(value) if isinstance(value, list) else value
        return result


@dataclass
class ConfigPluginDockerStdout:
    """Settings of the docker stdout/stderr input plugin."""

    include_label: dict[str, str] | None = None
    exclude_label: dict[str, str] | None = None
    include_env: dict[str, str] | None = None
    exclude_env: dict[str, str] | None = None
    flush_interval_ms: int = 0
    timeout_ms: int = 0
    begin_line_regex: str = ""
    begin_line_timeout_ms: int = 0
    begin_line_check_length: int = 0
    max_log_size: int = 0
    stdout: bool = False
    stderr: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "IncludeLabel": _mapping_or_none(self.include_label),
            "ExcludeLabel": _mapping_or_none(self.exclude_label),
            "IncludeEnv": _mapping_or_none(self.include_env),
            "ExcludeEnv": _mapping_or_none(self.exclude_env),
            "FlushIntervalMs": self.flush_interval_ms,
            "TimeoutMs": self.timeout_ms,
            "BeginLineRegex": self.begin_line_regex,
            "BeginLineTimeoutMs": self.begin_line_timeout_ms,
            "BeginLineCheckLength": self.begin_line_check_length,
            "MaxLogSize": self.max_log_size,
            "Stdout": self.stdout,
            "Stderr": self.stderr,
        }


def create_config_plugin_canal() -> ConfigPluginCanal:
    """Canal settings with the service defaults filled in."""
    return ConfigPluginCanal(
        host="127.0.0.1",
        port=3306,
        user="root",
        flavor="mysql",
        server_id=1205,
        heart_beat_period=60,
        read_timeout=90,
        enable_gtid=True,
        enable_insert=True,
        enable_update=True,
        enable_delete=True,
        charset="utf8",
    )


def create_config_plugin_docker_stdout() -> ConfigPluginDockerStdout:
    """Docker stdout settings with the service defaults filled in."""
    return ConfigPluginDockerStdout(
        flush_interval_ms=3000,
        timeout_ms=3000,
        stdout=True,
        stderr=True,
        begin_line_timeout_ms=3000,
        begin_line_check_length=10 * 1024,
        max_log_size=512 * 1024,
    )