"""Logtail collection configurations and their JSON representations."""

from __future__ import annotations

import copy
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field, fields
from typing import Any

from .plugin import LogConfigPluginInput, _to_json_value

INPUT_TYPE_SYSLOG = "syslog"
INPUT_TYPE_STREAMLOG = "streamlog"
INPUT_TYPE_PLUGIN = "plugin"
INPUT_TYPE_FILE = "file"

LOG_FILE_TYPE_APSARA_LOG = "apsara_log"
LOG_FILE_TYPE_REGEX_LOG = "common_reg_log"
LOG_FILE_TYPE_JSON_LOG = "json_log"
LOG_FILE_TYPE_DELIMITER_LOG = "delimiter_log"

OUTPUT_TYPE_LOG_SERVICE = "LogService"

MERGE_TYPE_TOPIC = "topic"
MERGE_TYPE_LOGSTORE = "logstore"

# Any other topic format is a file path regex whose first group is the topic.
TOPIC_FORMAT_NONE = "none"
TOPIC_FORMAT_MACHINE_GROUP = "group_topic"

_INPUT_TYPES = frozenset({INPUT_TYPE_SYSLOG, INPUT_TYPE_STREAMLOG, INPUT_TYPE_PLUGIN, INPUT_TYPE_FILE})
_NULLABLE_KINDS = frozenset({"strlist", "strmap", "sensitive", "any"})


class NoConfigFieldError(LookupError):
    """The config has no field of the requested name."""


class InvalidTypeError(TypeError):
    """The config detail is not a mapping of fields."""


def is_valid_input_type(input_type: str) -> bool:
    """Tell whether the input type is one the service knows."""
    return input_type in _INPUT_TYPES


def _json_field(key: str, kind: str, default: Any = None, *, omitempty: bool = False, factory: Any = None) -> Any:
    metadata = {"json": key, "kind": kind, "omitempty": omitempty}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _is_empty(value: Any) -> bool:
    if value is None or value is False or value == "":
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return isinstance(value, (list, dict, tuple)) and not value


def _encode(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "strlist":
        return list(value)
    if kind == "strmap":
        return dict(value)
    if kind == "sensitive":
        return [item.to_dict() for item in value]
    if kind in ("plugin", "output"):
        return value.to_dict()
    if kind == "any":
        return _to_json_value(value)
    return value


def _decode(kind: str, value: Any, key: str) -> Any:
    if kind == "str":
        if isinstance(value, str):
            return value
    elif kind == "bool":
        if isinstance(value, bool):
            return value
    elif kind == "int":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif kind == "strlist":
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return list(value)
    elif kind == "strmap":
        if isinstance(value, Mapping) and all(isinstance(item, str) for item in value.values()):
            return dict(value)
    elif kind == "sensitive":
        if isinstance(value, list):
            return [SensitiveKey.from_dict(item) for item in value]
    elif kind == "plugin":
        return LogConfigPluginInput.from_dict(value)
    elif kind == "output":
        return OutputDetail.from_dict(value)
    elif kind == "any":
        return copy.deepcopy(value)
    raise TypeError(f"invalid value for field {key!r}: {value!r}")


def _struct_to_dict(obj: Any) -> dict[str, Any]:
    """Encode a config dataclass into its JSON form."""
    result: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if f.metadata["omitempty"] and _is_empty(value):
            continue
        result[f.metadata["json"]] = _encode(f.metadata["kind"], value)
    return result


def _struct_from_dict(cls: type, data: Any) -> Any:
    """Decode a JSON mapping leniently, matching keys case-insensitively."""
    if not isinstance(data, Mapping):
        raise TypeError(f"cannot decode {type(data).__name__} into {cls.__name__}")
    by_key = {}
    by_folded = {}
    for f in fields(cls):
        by_key[f.metadata["json"]] = f
        by_folded.setdefault(f.metadata["json"].lower(), f)
    obj = cls()
    for key, value in data.items():
        target = by_key.get(key)
        if target is None and isinstance(key, str):
            target = by_folded.get(key.lower())
        if target is None:
            continue
        kind = target.metadata["kind"]
        if value is None:
            if kind in _NULLABLE_KINDS:
                setattr(obj, target.name, None)
            continue
        setattr(obj, target.name, _decode(kind, value, key))
    return obj


@dataclass
class InputDetail:
    """Legacy flat description of a file input."""

    log_type: str = _json_field("logType", "str", "")
    log_path: str = _json_field("logPath", "str", "")
    file_pattern: str = _json_field("filePattern", "str", "")
    local_storage: bool = _json_field("localStorage", "bool", False)
    time_key: str = _json_field("timeKey", "str", "")
    time_format: str = _json_field("timeFormat", "str", "")
    log_begin_regex: str = _json_field("logBeginRegex", "str", "")
    regex: str = _json_field("regex", "str", "")
    keys: list[str] | None = _json_field("key", "strlist")
    filter_keys: list[str] | None = _json_field("filterKey", "strlist")
    filter_regex: list[str] | None = _json_field("filterRegex", "strlist")
    topic_format: str = _json_field("topicFormat", "str", "")
    separator: str = _json_field("separator", "str", "")
    auto_extend: bool = _json_field("autoExtend", "bool", False)

    def to_dict(self) -> dict[str, Any]:
        """The JSON form of this detail."""
        return _struct_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Any:
        """Decode a detail from its JSON form."""
        return _struct_from_dict(cls, data)


@dataclass
class SensitiveKey:
    """A key whose values are masked before upload."""

    key: str = _json_field("key", "str", "")
    type: str = _json_field("type", "str", "")
    regex_begin: str = _json_field("regex_begin", "str", "")
    regex_content: str = _json_field("regex_content", "str", "")
    all: bool = _json_field("all", "bool", False)
    const_string: str = _json_field("const", "str", "")

    def to_dict(self) -> dict[str, Any]:
        """The JSON form of this key."""
        return _struct_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Any:
        """Decode a key from its JSON form."""
        return _struct_from_dict(cls, data)


@dataclass
class CommonConfigInputDetail:
    """Settings shared by every input detail."""

    local_storage: bool = _json_field("localStorage", "bool", False)
    filter_keys: list[str] | None = _json_field("filterKey", "strlist", omitempty=True)
    filter_regex: list[str] | None = _json_field("filterRegex", "strlist", omitempty=True)
    shard_hash_key: list[str] | None = _json_field("shardHashKey", "strlist", omitempty=True)
    enable_tag: bool = _json_field("enableTag", "bool", False)
    enable_raw_log: bool = _json_field("enableRawLog", "bool", False)
    max_send_rate: int = _json_field("maxSendRate", "int", 0)
    send_rate_expire: int = _json_field("sendRateExpire", "int", 0)
    sensitive_keys: list[SensitiveKey] | None = _json_field("sensitive_keys", "sensitive", omitempty=True)
    merge_type: str = _json_field("mergeType", "str", "", omitempty=True)
    delay_alarm_bytes: int = _json_field("delayAlarmBytes", "int", 0, omitempty=True)
    adjust_time_zone: bool = _json_field("adjustTimezone", "bool", False)
    log_time_zone: str = _json_field("logTimezone", "str", "", omitempty=True)
    priority: int = _json_field("priority", "int", 0, omitempty=True)

    @classmethod
    def initialized(cls) -> Any:
        """A detail with the service's default settings filled in."""
        detail = cls()
        detail._apply_defaults()
        return detail

    def to_dict(self) -> dict[str, Any]:
        """The JSON form of this detail."""
        return _struct_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Any:
        """Decode a detail from its JSON form."""
        return _struct_from_dict(cls, data)

    def _apply_defaults(self) -> None:
        self.local_storage = True
        self.enable_tag = True
        self.max_send_rate = -1
        self.merge_type = MERGE_TYPE_TOPIC


@dataclass
class LocalFileConfigInputDetail(CommonConfigInputDetail):
    """Settings shared by every local file input."""

    log_type: str = _json_field("logType", "str", "")
    log_path: str = _json_field("logPath", "str", "")
    file_pattern: str = _json_field("filePattern", "str", "")
    time_format: str = _json_field("timeFormat", "str", "")
    topic_format: str = _json_field("topicFormat", "str", "", omitempty=True)
    preserve: bool = _json_field("preserve", "bool", False)
    preserve_depth: int = _json_field("preserveDepth", "int", 0)
    file_encoding: str = _json_field("fileEncoding", "str", "", omitempty=True)
    discard_unmatch: bool = _json_field("discardUnmatch", "bool", False)
    max_depth: int = _json_field("maxDepth", "int", 0)
    tail_existed: bool = _json_field("tailExisted", "bool", False)
    discard_non_utf8: bool = _json_field("discardNonUtf8", "bool", False)
    delay_skip_bytes: int = _json_field("delaySkipBytes", "int", 0)
    is_docker_file: bool = _json_field("dockerFile", "bool", False)
    docker_include_label: dict[str, str] | None = _json_field("dockerIncludeLabel", "strmap", omitempty=True)
    docker_exclude_label: dict[str, str] | None = _json_field("dockerExcludeLabel", "strmap", omitempty=True)
    docker_include_env: dict[str, str] | None = _json_field("dockerIncludeEnv", "strmap", omitempty=True)
    docker_exclude_env: dict[str, str] | None = _json_field("dockerExcludeEnv", "strmap", omitempty=True)

    def _apply_defaults(self) -> None:
        super()._apply_defaults()
        self.file_encoding = "utf8"
        self.max_depth = 100
        self.topic_format = TOPIC_FORMAT_NONE
        self.preserve = True
        self.discard_unmatch = True


@dataclass
class ApsaraLogConfigInputDetail(LocalFileConfigInputDetail):
    """Apsara format file input."""

    log_begin_regex: str = _json_field("logBeginRegex", "str", "")

    def _apply_defaults(self) -> None:
        super()._apply_defaults()
        self.log_begin_regex = ".*"
        self.log_type = LOG_FILE_TYPE_APSARA_LOG


@dataclass
class RegexConfigInputDetail(LocalFileConfigInputDetail):
    """File input parsed with a regular expression."""

    key: list[str] | None = _json_field("key", "strlist")
    log_begin_regex: str = _json_field("logBeginRegex", "str", "")
    regex: str = _json_field("regex", "str", "")

    def _apply_defaults(self) -> None:
        super()._apply_defaults()
        self.log_begin_regex = ".*"
        self.regex = "(.*)"
        self.log_type = LOG_FILE_TYPE_REGEX_LOG


@dataclass
class JSONConfigInputDetail(LocalFileConfigInputDetail):
    """File input of one JSON object per line."""

    time_key: str = _json_field("timeKey", "str", "")

    def _apply_defaults(self) -> None:
        super()._apply_defaults()
        self.log_type = LOG_FILE_TYPE_JSON_LOG


@dataclass
class DelimiterConfigInputDetail(LocalFileConfigInputDetail):
    """File input split on a separator."""

    separator: str = _json_field("separator", "str", "")
    quote: str = _json_field("quote", "str", "")
    key: list[str] | None = _json_field("key", "strlist")
    time_key: str = _json_field("timeKey", "str", "")
    auto_extend: bool = _json_field("autoExtend", "bool", False)

    def _apply_defaults(self) -> None:
        super()._apply_defaults()
        self.quote = "\u0001"
        self.auto_extend = True
        self.log_type = LOG_FILE_TYPE_DELIMITER_LOG


@dataclass
class PluginLogConfigInputDetail(CommonConfigInputDetail):
    """Input collected by a plugin pipeline (docker stdout, binlog, http...)."""

    plugin_detail: LogConfigPluginInput = _json_field("plugin", "plugin", factory=LogConfigPluginInput)


@dataclass
class StreamLogConfigInputDetail(CommonConfigInputDetail):
    """Syslog stream input."""

    tag: str = _json_field("tag", "str", "")


@dataclass
class OutputDetail:
    """Where collected logs are written."""

    project_name: str = _json_field("projectName", "str", "")
    log_store_name: str = _json_field("logstoreName", "str", "")

    def to_dict(self) -> dict[str, Any]:
        """The JSON form of this output."""
        return _struct_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Any:
        """Decode an output from its JSON form."""
        return _struct_from_dict(cls, data)


@dataclass
class LogConfig:
    """A complete Logtail collection config."""

    name: str = _json_field("configName", "str", "")
    log_sample: str = _json_field("logSample", "str", "")
    input_type: str = _json_field("inputType", "str", "")
    input_detail: Any = _json_field("inputDetail", "any")
    output_type: str = _json_field("outputType", "str", "")
    output_detail: OutputDetail = _json_field("outputDetail", "output", factory=OutputDetail)
    create_time: int = _json_field("CreateTime", "int", 0)
    last_modify_time: int = _json_field("lastModifyTime", "int", 0, omitempty=True)

    def to_dict(self) -> dict[str, Any]:
        """The JSON form of this config."""
        return _struct_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Any:
        """Decode a config from its JSON form."""
        return _struct_from_dict(cls, data)


def _decode_or_none(cls: type, detail: Mapping[str, Any]) -> Any:
    try:
        return cls.from_dict(detail)
    except (TypeError, ValueError):
        return None


def _convert_file_detail(detail: Any, cls: type, log_type: str) -> Any:
    if not isinstance(detail, Mapping) or "logType" not in detail or detail["logType"] != log_type:
        return None
    return _decode_or_none(cls, detail)


def convert_to_input_detail(detail: Any) -> InputDetail | None:
    """Decode a raw regex file detail into the legacy flat form, or None."""
    return _convert_file_detail(detail, InputDetail, LOG_FILE_TYPE_REGEX_LOG)


def convert_to_apsara_log_config_input_detail(detail: Any) -> ApsaraLogConfigInputDetail | None:
    """Decode a raw apsara file detail, or None if it is not one."""
    return _convert_file_detail(detail, ApsaraLogConfigInputDetail, LOG_FILE_TYPE_APSARA_LOG)


def convert_to_regex_config_input_detail(detail: Any) -> RegexConfigInputDetail | None:
    """Decode a raw regex file detail, or None if it is not one."""
    return _convert_file_detail(detail, RegexConfigInputDetail, LOG_FILE_TYPE_REGEX_LOG)


def convert_to_json_config_input_detail(detail: Any) -> JSONConfigInputDetail | None:
    """Decode a raw JSON file detail, or None if it is not one."""
    return _convert_file_detail(detail, JSONConfigInputDetail, LOG_FILE_TYPE_JSON_LOG)


def convert_to_delimiter_config_input_detail(detail: Any) -> DelimiterConfigInputDetail | None:
    """Decode a raw delimiter file detail, or None if it is not one."""
    return _convert_file_detail(detail, DelimiterConfigInputDetail, LOG_FILE_TYPE_DELIMITER_LOG)


def convert_to_plugin_log_config_input_detail(detail: Any) -> PluginLogConfigInputDetail | None:
    """Decode a raw plugin detail: it must have a plugin and no log type."""
    if not isinstance(detail, Mapping) or "plugin" not in detail or "logType" in detail:
        return None
    return _decode_or_none(PluginLogConfigInputDetail, detail)


def convert_to_stream_log_config_input_detail(detail: Any) -> StreamLogConfigInputDetail | None:
    """Decode a raw stream detail: it must have a tag."""
    if not isinstance(detail, Mapping) or "tag" not in detail:
        return None
    return _decode_or_none(StreamLogConfigInputDetail, detail)


def get_file_config_input_detail_type(detail: Any) -> str | None:
    """The log type of a raw file detail, or None if it has none."""
    if isinstance(detail, Mapping) and "logType" in detail:
        log_type = detail["logType"]
        if not isinstance(log_type, str):
            raise TypeError(f"logType must be a string, not {log_type!r}")
        return log_type
    return None


def add_necessary_local_file_input_config_field(detail: MutableMapping[str, Any]) -> None:
    """Fill in the default settings of a raw local file detail."""
    detail.setdefault("fileEncoding", "utf8")
    detail.setdefault("maxDepth", 100)
    detail.setdefault("topicFormat", TOPIC_FORMAT_NONE)
    detail.setdefault("preserve", True)
    detail.setdefault("discardUnmatch", True)
    detail.setdefault("timeFormat", "")


def add_necessary_apsara_log_input_config_field(detail: MutableMapping[str, Any]) -> None:
    """Fill in the default settings of a raw apsara detail."""
    detail.setdefault("logBeginRegex", ".*")


def add_necessary_regex_log_input_config_field(detail: MutableMapping[str, Any]) -> None:
    """Fill in the default settings of a raw regex detail."""
    detail.setdefault("logBeginRegex", ".*")
    detail.setdefault("regex", "(.*)")
    detail.setdefault("key", ["content"])


def add_necessary_json_log_input_config_field(detail: MutableMapping[str, Any]) -> None:
    """Fill in the default settings of a raw JSON detail."""
    detail.setdefault("timeKey", "")


def add_necessary_delimiter_log_input_config_field(detail: MutableMapping[str, Any]) -> None:
    """Fill in the default settings of a raw delimiter detail."""
    detail.setdefault("quote", "\u0001")
    detail.setdefault("autoExtend", True)
    detail.setdefault("timeKey", "")


_TYPE_DEFAULTS = {
    LOG_FILE_TYPE_APSARA_LOG: add_necessary_apsara_log_input_config_field,
    LOG_FILE_TYPE_REGEX_LOG: add_necessary_regex_log_input_config_field,
    LOG_FILE_TYPE_JSON_LOG: add_necessary_json_log_input_config_field,
    LOG_FILE_TYPE_DELIMITER_LOG: add_necessary_delimiter_log_input_config_field,
}


def add_necessary_input_config_field(detail: MutableMapping[str, Any]) -> None:
    """Fill in every default setting a raw input detail is missing."""
    detail.setdefault("localStorage", True)
    detail.setdefault("enableTag", True)
    detail.setdefault("maxSendRate", -1)
    detail.setdefault("mergeType", MERGE_TYPE_TOPIC)
    log_type = detail.get("logType")
    if isinstance(log_type, str):
        add_necessary_local_file_input_config_field(detail)
        type_defaults = _TYPE_DEFAULTS.get(log_type)
        if type_defaults is not None:
            type_defaults(detail)


def update_input_config_field(detail: Any, key: str, value: Any) -> None:
    """Replace an existing field of a raw input detail."""
    if not isinstance(detail, MutableMapping):
        raise InvalidTypeError("invalid config type")
    if key not in detail:
        raise NoConfigFieldError(f"no this config field: {key!r}")
    detail[key] = value