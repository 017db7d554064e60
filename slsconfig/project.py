"""Client for the project-level management API: logstores, machine groups and configs."""

from __future__ import annotations

import json
import logging
import re
import time
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, ClassVar

from .log_config import LogConfig

_log = logging.getLogger(__name__)

HTTP_SCHEME = "http://"
HTTPS_SCHEME = "https://"

DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_RETRY_TIMEOUT = 90.0

_IP_REGEX = re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}.*")
_RETRYABLE_STATUS = frozenset({500, 502, 503})
_MAX_BACKOFF = 5.0


def _seconds(timeout: float | timedelta) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


def _json_object(body: bytes) -> dict[str, Any]:
    try:
        decoded = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _lookup(body: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Field lookup that falls back to a case-insensitive match."""
    if name in body:
        return body[name]
    folded = name.lower()
    for key, value in body.items():
        if isinstance(key, str) and key.lower() == folded:
            return value
    return default


def _str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _payload(obj: Any) -> dict[str, Any]:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, Mapping):
        return dict(obj)
    raise ClientError(f"cannot encode {type(obj).__name__} as a request body")


def _encode(obj: Any) -> bytes:
    try:
        return json.dumps(_payload(obj), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ClientError(str(exc)) from exc


class LogError(Exception):
    """An error reported by the log service."""

    def __init__(self, code: str = "", message: str = "", request_id: str = "", http_code: int = 0) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id
        self.http_code = http_code

    def __str__(self) -> str:
        return json.dumps(
            {
                "httpCode": self.http_code,
                "errorCode": self.code,
                "errorMessage": self.message,
                "requestID": self.request_id,
            },
            ensure_ascii=False,
        )

    @classmethod
    def from_response(cls, response: Response) -> LogError:
        body = _json_object(response.body)
        code = _lookup(body, "errorCode", "")
        message = _lookup(body, "errorMessage", "")
        request_id = _lookup(body, "requestID", "") or response.header("x-log-requestid")
        return cls(
            code=code if isinstance(code, str) else str(code),
            message=message if isinstance(message, str) else str(message),
            request_id=request_id if isinstance(request_id, str) else str(request_id),
            http_code=response.status_code,
        )


class ClientError(LogError):
    """A failure on the client side: transport, encoding or retry exhaustion."""

    def __init__(self, message: str) -> None:
        super().__init__(code="ClientError", message=message)


@dataclass
class Response:
    """An HTTP response with its body fully read."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str = "") -> str:
        folded = name.lower()
        for key, value in self.headers.items():
            if key.lower() == folded:
                return value
        return default

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text)


class HttpTransport:
    """Sends HTTP requests, optionally through a proxy."""

    def __init__(self, timeout: float | timedelta = DEFAULT_REQUEST_TIMEOUT, proxy: str | None = None) -> None:
        self.timeout = _seconds(timeout)
        self.proxy = proxy
        if proxy:
            handler = urllib.request.ProxyHandler({"http": proxy, "https": proxy})
        else:
            handler = urllib.request.ProxyHandler({})
        self._opener = urllib.request.build_opener(handler)

    def send(self, method: str, url: str, headers: Mapping[str, str], body: bytes | None) -> Response:
        """Send one request; HTTP error statuses come back as responses."""
        req = urllib.request.Request(url, data=body, headers=dict(headers), method=method)
        try:
            with self._opener.open(req, timeout=self.timeout) as resp:
                return Response(resp.status, dict(resp.headers.items()), resp.read())
        except urllib.error.HTTPError as err:
            with err:
                return Response(err.code, dict(err.headers.items()), err.read())


class LogProject:
    """A log service project and the management operations on it."""

    force_using_http: ClassVar[bool] = False

    def __init__(
        self,
        name: str,
        endpoint: str,
        access_key_id: str = "",
        access_key_secret: str = "",
        *,
        transport: Any = None,
    ) -> None:
        self.name = name
        self.endpoint = endpoint
        self.access_key_id = access_key_id
        self.access_key_secret = access_key_secret
        self.description = ""
        self.status = ""
        self.owner = ""
        self.region = ""
        self.create_time = ""
        self.last_modify_time = ""
        self.security_token = ""
        self.using_http = False
        self.user_agent = ""
        self.retry_timeout = DEFAULT_RETRY_TIMEOUT
        self.initial_backoff = 0.1
        self._custom_transport = transport is not None
        self.transport = transport if transport is not None else HttpTransport()
        self._base_url = ""
        self._parse_endpoint()

    def with_token(self, token: str) -> LogProject:
        self.security_token = token
        return self

    def with_request_timeout(self, timeout: float | timedelta) -> LogProject:
        """Limit the time one HTTP request may take."""
        self.transport.timeout = _seconds(timeout)
        return self

    def with_retry_timeout(self, timeout: float | timedelta) -> LogProject:
        """Limit the time an operation may spend retrying its requests."""
        self.retry_timeout = _seconds(timeout)
        return self

    def base_url(self) -> str:
        if not self._base_url:
            self._parse_endpoint()
        return self._base_url

    def _parse_endpoint(self) -> None:
        scheme = HTTP_SCHEME
        host = self.endpoint
        if self.endpoint.startswith(HTTP_SCHEME):
            host = self.endpoint[len(HTTP_SCHEME):]
        elif self.endpoint.startswith(HTTPS_SCHEME):
            scheme = HTTPS_SCHEME
            host = self.endpoint[len(HTTPS_SCHEME):]
        if self.force_using_http or self.using_http:
            scheme = HTTP_SCHEME
        if _IP_REGEX.search(host) and not self._custom_transport:
            self.transport = HttpTransport(timeout=DEFAULT_REQUEST_TIMEOUT, proxy=f"{scheme}{host}")
        self._base_url = f"{scheme}{host}" if not self.name else f"{scheme}{self.name}.{host}"

    def request(
        self, method: str, uri: str, headers: Mapping[str, str] | None = None, body: bytes | None = None
    ) -> Response:
        """Send a request, retrying server errors until the retry timeout runs out."""
        url = self.base_url() + uri
        all_headers = dict(headers or {})
        if self.user_agent:
            all_headers.setdefault("User-Agent", self.user_agent)
        if self.security_token:
            all_headers["x-acs-security-token"] = self.security_token
        deadline = time.monotonic() + self.retry_timeout
        delay = self.initial_backoff
        while True:
            try:
                response = self.transport.send(method, url, all_headers, body)
            except OSError as exc:
                last: Exception = exc
            else:
                if response.status_code == 200:
                    return response
                error = LogError.from_response(response)
                if response.status_code not in _RETRYABLE_STATUS:
                    raise error
                last = error
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ClientError(f"stopped retrying err: {last}, context deadline exceeded") from last
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, _MAX_BACKOFF)

    def _get(self, uri: str) -> Response:
        return self.request("GET", uri, {"x-log-bodyrawsize": "0"})

    def _send_json(self, method: str, uri: str, body: bytes) -> None:
        headers = {
            "x-log-bodyrawsize": str(len(body)),
            "Content-Type": "application/json",
            "Accept-Encoding": "deflate",
        }
        self.request(method, uri, headers, body)

    def _send_empty(self, method: str, uri: str) -> None:
        self.request(method, uri, {"x-log-bodyrawsize": "0"})

    def _exists(self, uri: str, missing_code: str) -> bool:
        try:
            self._get(uri)
        except LogError as err:
            if err.code == missing_code:
                return False
            raise
        return True

    def list_log_store(self) -> list[str]:
        body = _json_object(self._get("/logstores").body)
        return _str_list(_lookup(body, "logstores"))

    def get_log_store(self, name: str) -> dict[str, Any]:
        store = _json_object(self._get("/logstores/" + name).body)
        store["logstoreName"] = name
        return store

    def create_log_store(self, name: str, ttl: int, shard_count: int, auto_split: bool, max_split_shard: int) -> None:
        store = {
            "logstoreName": name,
            "ttl": ttl,
            "shardCount": shard_count,
            "autoSplit": auto_split,
            "maxSplitShard": max_split_shard,
            "enable_tracking": False,
        }
        self._send_json("POST", "/logstores", _encode(store))

    def create_log_store_v2(self, logstore: Any) -> None:
        self._send_json("POST", "/logstores", _encode(logstore))

    def delete_log_store(self, name: str) -> None:
        self._send_empty("DELETE", "/logstores/" + name)

    def update_log_store(self, name: str, ttl: int, shard_count: int) -> None:
        store = {"logstoreName": name, "ttl": ttl, "shardCount": shard_count}
        self._send_json("PUT", "/logstores/" + name, _encode(store))

    def update_log_store_v2(self, logstore: Any) -> None:
        payload = _payload(logstore)
        self._send_json("PUT", f"/logstores/{payload.get('logstoreName', '')}", _encode(payload))

    def list_machine_group(self, offset: int = 0, size: int = 0) -> tuple[list[str], int]:
        """Machine group names from offset on, and the total count."""
        if size <= 0:
            size = 500
        body = _json_object(self._get(f"/machinegroups?offset={offset}&size={size}").body)
        return _str_list(_lookup(body, "machinegroups")), _int(_lookup(body, "total", 0))

    def check_logstore_exist(self, name: str) -> bool:
        return self._exists("/logstores/" + name, "LogStoreNotExist")

    def check_machine_group_exist(self, name: str) -> bool:
        return self._exists("/machinegroups/" + name, "MachineGroupNotExist")

    def get_machine_group(self, name: str) -> dict[str, Any]:
        return _json_object(self._get("/machinegroups/" + name).body)

    def create_machine_group(self, group: Any) -> None:
        self._send_json("POST", "/machinegroups", _encode(group))

    def update_machine_group(self, group: Any) -> None:
        payload = _payload(group)
        self._send_json("PUT", f"/machinegroups/{payload.get('groupName', '')}", _encode(payload))

    def delete_machine_group(self, name: str) -> None:
        self._send_empty("DELETE", "/machinegroups/" + name)

    def list_config(self, offset: int = 0, size: int = 0) -> tuple[list[str], int]:
        """Config names from offset on, and the total count."""
        if size <= 0:
            size = 100
        body = _json_object(self._get(f"/configs?offset={offset}&size={size}").body)
        return _str_list(_lookup(body, "configs")), _int(_lookup(body, "total", 0))

    def check_config_exist(self, name: str) -> bool:
        return self._exists("/configs/" + name, "ConfigNotExist")

    def get_config(self, name: str) -> LogConfig:
        body = _json_object(self._get("/configs/" + name).body)
        try:
            config = LogConfig.from_dict(body)
        except (TypeError, ValueError) as exc:
            raise ClientError(str(exc)) from exc
        _log.debug("got logtail config %s", config)
        return config

    def update_config(self, config: LogConfig) -> None:
        self._send_json("PUT", "/configs/" + config.name, _encode(config))

    def create_config(self, config: LogConfig) -> None:
        self._send_json("POST", "/configs", _encode(config))

    def get_config_string(self, name: str) -> str:
        text = self._get("/configs/" + name).text
        _log.debug("got logtail config %s", text)
        return text

    def update_config_string(self, config_name: str, config: str) -> None:
        self._send_json("PUT", "/configs/" + config_name, config.encode("utf-8"))

    def create_config_string(self, config: str) -> None:
        self._send_json("POST", "/configs", config.encode("utf-8"))

    def delete_config(self, name: str) -> None:
        self._send_empty("DELETE", "/configs/" + name)

    def get_applied_machine_groups(self, conf_name: str) -> list[str]:
        body = _json_object(self._get(f"/configs/{conf_name}/machinegroups").body)
        return _str_list(_lookup(body, "machinegroups"))

    def get_applied_configs(self, group_name: str) -> list[str]:
        body = _json_object(self._get(f"/machinegroups/{group_name}/configs").body)
        return _str_list(_lookup(body, "configs"))

    def apply_config_to_machine_group(self, conf_name: str, group_name: str) -> None:
        self._send_empty("PUT", f"/machinegroups/{group_name}/configs/{conf_name}")

    def remove_config_from_machine_group(self, conf_name: str, group_name: str) -> None:
        self._send_empty("DELETE", f"/machinegroups/{group_name}/configs/{conf_name}")