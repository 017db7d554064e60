import json
import threading
from datetime import timedelta
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from slsconfig.log_config import LogConfig, OutputDetail
from slsconfig.project import ClientError, HttpTransport, LogError, LogProject, Response


class FakeTransport:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []
        self.timeout = 60.0

    def send(self, method, url, headers, body):
        self.calls.append((method, url, dict(headers), body))
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def ok(payload=None):
    body = b"" if payload is None else json.dumps(payload).encode()
    return Response(200, {}, body)


def failure(status, code, message):
    body = json.dumps({"errorCode": code, "errorMessage": message}).encode()
    return Response(status, {"x-log-requestid": "req-1"}, body)


def make_project(responses=None, error=None, retry_timeout=2.0):
    transport = FakeTransport(responses, error)
    project = LogProject("my-project", "cn-test.example.com", "id", "key", transport=transport)
    project.with_retry_timeout(retry_timeout)
    project.initial_backoff = 0.01
    return project, transport


def test_base_url_with_project_name():
    project, _ = make_project([ok()])
    assert project.base_url() == "http://my-project.cn-test.example.com"


def test_base_url_https_and_forced_http():
    transport = FakeTransport([ok()])
    project = LogProject("p", "https://host.example.com", transport=transport)
    assert project.base_url() == "https://p.host.example.com"
    unnamed = LogProject("", "https://host.example.com", transport=transport)
    assert unnamed.base_url() == "https://host.example.com"
    unnamed.using_http = True
    unnamed._base_url = ""
    assert unnamed.base_url() == "http://host.example.com"


def test_ip_endpoint_uses_proxy_transport():
    project = LogProject("p", "10.0.0.1", "id", "key")
    assert project.transport.proxy == "http://10.0.0.1"
    assert project.base_url() == "http://p.10.0.0.1"


def test_check_not_exist_returns_false():
    project, _ = make_project([failure(404, "LogStoreNotExist", "no store")])
    assert project.check_logstore_exist("not-exist-logstore") is False
    project, _ = make_project([failure(404, "MachineGroupNotExist", "no group")])
    assert project.check_machine_group_exist("not-exist-group") is False
    project, _ = make_project([failure(404, "ConfigNotExist", "no config")])
    assert project.check_config_exist("not-exist-config") is False


def test_check_exist_true_and_other_errors_raise():
    project, transport = make_project([ok({})])
    assert project.check_config_exist("cfg") is True
    assert transport.calls[0][1].endswith("/configs/cfg")
    project, _ = make_project([failure(401, "Unauthorized", "AccessKeyId not found: no-exist-key")])
    with pytest.raises(LogError) as info:
        project.check_logstore_exist("store")
    assert info.value.code == "Unauthorized"
    assert info.value.http_code == 401


def test_project_not_exist_error_fields():
    project, _ = make_project([failure(404, "ProjectNotExist", "The Project does not exist : no-exist-project")])
    with pytest.raises(LogError) as info:
        project.list_log_store()
    assert info.value.code == "ProjectNotExist"
    assert info.value.http_code == 404
    assert info.value.message == "The Project does not exist : no-exist-project"
    assert info.value.request_id == "req-1"


def test_retry_until_deadline():
    project, transport = make_project([failure(500, "InternalServerError", "server error 500")], retry_timeout=0.2)
    with pytest.raises(ClientError) as info:
        project.request("GET", "/logstores/s", {"x-log-bodyrawsize": "0"})
    text = str(info.value)
    assert "context deadline exceeded" in text
    assert "server error 500" in text
    assert "stopped retrying err" in text
    assert len(transport.calls) >= 2


@pytest.mark.parametrize("status", [404, 504])
def test_non_retryable_error_raised_directly(status):
    project, transport = make_project([failure(status, "Err", f"server error {status}")])
    with pytest.raises(LogError) as info:
        project.request("POST", "/logstores/s", {}, b"x")
    text = str(info.value)
    assert f"server error {status}" in text
    assert "stopped retrying err" not in text
    assert "context deadline exceeded" not in text
    assert len(transport.calls) == 1


def test_success_without_retry():
    project, transport = make_project([ok({"a": 1})])
    response = project.request("GET", "/x")
    assert response.status_code == 200
    assert response.json() == {"a": 1}
    assert len(transport.calls) == 1


@pytest.mark.parametrize("status", [500, 502, 503])
def test_retry_then_succeed(status):
    responses = [failure(status, "E", "server error")] * 3 + [ok()]
    project, transport = make_project(responses, retry_timeout=5.0)
    response = project.request("POST", "/logstores/s", {}, b"data")
    assert response.status_code == 200
    assert len(transport.calls) == 4


def test_request_timeout_is_retried():
    project, transport = make_project(error=TimeoutError("timed out"), retry_timeout=0.2)
    with pytest.raises(ClientError) as info:
        project.list_log_store()
    assert "context deadline exceeded" in str(info.value)
    assert len(transport.calls) >= 2


def test_timeouts_and_token():
    project, transport = make_project([ok({})])
    assert project.with_request_timeout(timedelta(seconds=3)) is project
    assert transport.timeout == 3.0
    project.with_retry_timeout(7)
    assert project.retry_timeout == 7.0
    assert project.with_token("token") is project
    project.list_log_store()
    assert transport.calls[0][2]["x-acs-security-token"] == "token"


def test_list_log_store():
    project, transport = make_project([ok({"count": 2, "logstores": ["a", "b"]})])
    assert project.list_log_store() == ["a", "b"]
    assert transport.calls[0][0] == "GET"
    assert transport.calls[0][2]["x-log-bodyrawsize"] == "0"


def test_list_machine_group_default_size():
    project, transport = make_project([ok({"machinegroups": ["g1"], "count": 1, "total": 7})])
    assert project.list_machine_group(0, 0) == (["g1"], 7)
    assert transport.calls[0][1].endswith("/machinegroups?offset=0&size=500")


def test_list_config_default_size():
    project, transport = make_project([ok({"total": 2, "configs": ["c1", "c2"]})])
    assert project.list_config(5, -1) == (["c1", "c2"], 2)
    assert transport.calls[0][1].endswith("/configs?offset=5&size=100")


def test_create_log_store_body_and_headers():
    project, transport = make_project([ok()])
    project.create_log_store("github-test", 14, 2, True, 16)
    method, url, headers, body = transport.calls[0]
    assert method == "POST"
    assert url.endswith("/logstores")
    assert json.loads(body) == {
        "logstoreName": "github-test",
        "ttl": 14,
        "shardCount": 2,
        "autoSplit": True,
        "maxSplitShard": 16,
        "enable_tracking": False,
    }
    assert headers["x-log-bodyrawsize"] == str(len(body))
    assert headers["Content-Type"] == "application/json"


def test_update_log_store_and_v2():
    project, transport = make_project([ok()])
    project.update_log_store("s", 7, 2)
    assert transport.calls[0][0] == "PUT"
    assert transport.calls[0][1].endswith("/logstores/s")
    assert json.loads(transport.calls[0][3]) == {"logstoreName": "s", "ttl": 7, "shardCount": 2}
    project.update_log_store_v2({"logstoreName": "t", "ttl": 2})
    assert transport.calls[1][1].endswith("/logstores/t")


def test_get_log_store_sets_name():
    project, _ = make_project([ok({"ttl": 3, "shardCount": 2})])
    assert project.get_log_store("store") == {"ttl": 3, "shardCount": 2, "logstoreName": "store"}


def test_machine_group_operations():
    project, transport = make_project([ok({"groupName": "g", "machineIdentifyType": "userdefined"})])
    assert project.get_machine_group("g")["groupName"] == "g"
    project.update_machine_group({"groupName": "g"})
    assert transport.calls[1][0] == "PUT"
    assert transport.calls[1][1].endswith("/machinegroups/g")
    project.delete_machine_group("g")
    assert transport.calls[2][0] == "DELETE"


def test_config_roundtrip():
    config = LogConfig(
        name="cfg",
        input_type="file",
        output_type="LogService",
        input_detail={"logType": "json_log"},
        output_detail=OutputDetail(project_name="p", log_store_name="s"),
    )
    project, transport = make_project([ok()])
    project.create_config(config)
    sent = json.loads(transport.calls[0][3])
    assert sent["configName"] == "cfg"
    transport.responses = [ok(sent)]
    fetched = project.get_config("cfg")
    assert fetched.name == "cfg"
    assert fetched.output_detail.log_store_name == "s"
    assert fetched.input_detail == {"logType": "json_log"}


def test_config_string_operations():
    project, transport = make_project([Response(200, {}, b'{"configName":"c"}')])
    assert project.get_config_string("c") == '{"configName":"c"}'
    project.update_config_string("c", '{"configName":"c"}')
    assert transport.calls[1][1].endswith("/configs/c")
    assert transport.calls[1][3] == b'{"configName":"c"}'
    assert transport.calls[1][2]["x-log-bodyrawsize"] == "18"


def test_applied_and_apply():
    project, transport = make_project([ok({"count": 1, "machinegroups": ["g"]})])
    assert project.get_applied_machine_groups("c") == ["g"]
    assert transport.calls[0][1].endswith("/configs/c/machinegroups")
    transport.responses = [ok({"count": 1, "configs": ["c"]})]
    assert project.get_applied_configs("g") == ["c"]
    project.apply_config_to_machine_group("c", "g")
    assert transport.calls[2][0] == "PUT"
    assert transport.calls[2][1].endswith("/machinegroups/g/configs/c")
    project.remove_config_from_machine_group("c", "g")
    assert transport.calls[3][0] == "DELETE"


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        status = 200 if self.path == "/good" else 404
        payload = b'{"ok":true}' if status == 200 else b'{"errorCode":"X","errorMessage":"missing"}'
        self.send_response(status)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, *args):
        pass


def test_http_transport_against_local_server():
    server = HTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        transport = HttpTransport(timeout=5)
        base = f"http://127.0.0.1:{server.server_port}"
        good = transport.send("GET", base + "/good", {}, None)
        assert good.status_code == 200
        assert good.json() == {"ok": True}
        bad = transport.send("GET", base + "/bad", {}, None)
        assert bad.status_code == 404
        assert LogError.from_response(bad).message == "missing"
    finally:
        server.shutdown()
        server.server_close()