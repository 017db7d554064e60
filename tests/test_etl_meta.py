import json
from urllib.parse import parse_qs, urlsplit

import pytest

from slsconfig.etl_meta import (
    ETL_META_ALL_TAG_MATCH,
    ETL_META_NAME_URI,
    ETL_META_URI,
    EtlMeta,
    EtlMetaStore,
)
from slsconfig.project import ClientError, LogError, LogProject, Response


class FakeTransport:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.timeout = 1.0

    def send(self, method, url, headers, body):
        self.calls.append((method, url, dict(headers), body))
        return self.responses.pop(0)


def ok(payload=None):
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return Response(200, {}, body)


def make_store(*responses):
    transport = FakeTransport(*responses)
    project = LogProject("proj", "example.com", "id", "placeholder", transport=transport)
    project.retry_timeout = 0.0
    return EtlMetaStore(project), transport


def split(url):
    parts = urlsplit(url)
    return parts.path, {k: v[0] for k, v in parse_qs(parts.query, keep_blank_values=True).items()}


SAMPLE = EtlMeta(
    meta_name="xx-log",
    meta_key="test-meta-key",
    meta_tag="123456",
    meta_value={"region": "cn-shenzhen", "project": "test-project"},
)


def listing(*metas, total=None):
    return {
        "total": len(metas) if total is None else total,
        "count": len(metas),
        "etlMetaList": [m.to_dict() for m in metas],
    }


def test_to_dict_encodes_value_as_json_string():
    data = SAMPLE.to_dict()
    assert data["etlMetaName"] == "xx-log"
    assert data["etlMetaKey"] == "test-meta-key"
    assert data["etlMetaTag"] == "123456"
    assert json.loads(data["etlMetaValue"]) == SAMPLE.meta_value


def test_create_posts_meta():
    store, transport = make_store(ok())
    store.create(SAMPLE)
    method, url, headers, body = transport.calls[0]
    assert method == "POST"
    assert url == f"http://proj.example.com/{ETL_META_URI}"
    assert headers["Content-Type"] == "application/json"
    assert headers["x-log-bodyrawsize"] == str(len(body))
    assert json.loads(body) == SAMPLE.to_dict()


def test_update_puts_meta():
    store, transport = make_store(ok())
    store.update(SAMPLE)
    method, url, _, body = transport.calls[0]
    assert method == "PUT"
    assert url.endswith(f"/{ETL_META_URI}")
    assert json.loads(body) == SAMPLE.to_dict()


def test_delete_matches_all_tags():
    store, transport = make_store(ok())
    store.delete("xx-log", "test-meta-key")
    method, url, _, body = transport.calls[0]
    path, query = split(url)
    assert method == "DELETE"
    assert body is None
    assert path == f"/{ETL_META_URI}"
    assert query == {
        "etlMetaName": "xx-log",
        "etlMetaKey": "test-meta-key",
        "etlMetaTag": ETL_META_ALL_TAG_MATCH,
    }


def test_get_returns_first_meta():
    store, transport = make_store(ok(listing(SAMPLE)))
    meta = store.get("xx-log", "test-meta-key")
    assert meta == SAMPLE
    _, query = split(transport.calls[0][1])
    assert query["offset"] == "0"
    assert query["size"] == "1"
    assert query["etlMetaTag"] == ETL_META_ALL_TAG_MATCH


def test_get_returns_none_when_nothing_matches():
    store, _ = make_store(ok({"total": 0, "count": 0, "etlMetaList": []}))
    assert store.get("xx-log", "missing") is None


def test_list_returns_total_count_and_metas():
    other = EtlMeta("xx-log", "k2", "t", {"a": "b"})
    store, transport = make_store(ok(listing(SAMPLE, other, total=7)))
    total, count, metas = store.list("xx-log", 0, 100)
    assert total == 7
    assert count == 2
    assert metas == [SAMPLE, other]
    _, query = split(transport.calls[0][1])
    assert query["etlMetaKey"] == ""
    assert query["size"] == "100"


def test_list_with_tag_sends_tag():
    store, transport = make_store(ok(listing(SAMPLE)))
    _, _, metas = store.list_with_tag("xx-log", "123456", 0, 100)
    assert metas == [SAMPLE]
    _, query = split(transport.calls[0][1])
    assert query["etlMetaTag"] == "123456"


def test_list_empty_count_gives_empty_list():
    store, _ = make_store(ok({"total": 3, "count": 0}))
    assert store.list("xx-log", 0, 10) == (3, 0, [])


def test_list_names():
    store, transport = make_store(ok({"total": 2, "count": 2, "etlMetaNameList": ["xx-log", "yy-log"]}))
    assert store.list_names(0, 100) == (2, 2, ["xx-log", "yy-log"])
    path, query = split(transport.calls[0][1])
    assert path == f"/{ETL_META_NAME_URI}"
    assert query == {"offset": "0", "size": "100"}


def test_invalid_meta_value_raises_client_error():
    bad = {"total": 1, "count": 1, "etlMetaList": [{"etlMetaName": "n", "etlMetaValue": "not json"}]}
    store, _ = make_store(ok(bad))
    with pytest.raises(ClientError):
        store.list("n", 0, 10)


def test_service_error_is_raised():
    error_body = json.dumps({"errorCode": "PostBodyInvalid", "errorMessage": "bad body"}).encode()
    store, _ = make_store(Response(400, {}, error_body))
    with pytest.raises(LogError) as info:
        store.create(SAMPLE)
    assert info.value.code == "PostBodyInvalid"
    assert info.value.http_code == 400