"""ETL meta records stored in a project: create, update, delete, look up and list."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from .project import ClientError, LogProject, _int, _json_object, _lookup, _str_list

ETL_META_URI = "etlmetas"
ETL_META_NAME_URI = "etlmetanames"
ETL_META_ALL_TAG_MATCH = "__all_etl_meta_tag_match__"


def _q(value: Any) -> str:
    return quote(str(value), safe="")


@dataclass
class EtlMeta:
    """One ETL meta record: a name, a key, a tag and a string-to-string value map."""

    meta_name: str = ""
    meta_key: str = ""
    meta_tag: str = ""
    meta_value: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "etlMetaName": self.meta_name,
            "etlMetaKey": self.meta_key,
            "etlMetaTag": self.meta_tag,
            "etlMetaValue": json.dumps(dict(self.meta_value or {}), ensure_ascii=False),
        }

    @classmethod
    def _from_listing(cls, item: Mapping[str, Any]) -> EtlMeta:
        raw_value = _lookup(item, "etlMetaValue", "")
        if not isinstance(raw_value, str):
            raise ClientError(f"etlMetaValue must be a string, not {raw_value!r}")
        try:
            value = json.loads(raw_value)
        except ValueError as exc:
            raise ClientError(str(exc)) from exc
        if value is None:
            value = {}
        if not isinstance(value, dict) or not all(isinstance(v, str) for v in value.values()):
            raise ClientError(f"etlMetaValue is not a map of strings: {raw_value!r}")

        def text(name: str) -> str:
            found = _lookup(item, name, "")
            return found if isinstance(found, str) else ""

        return cls(
            meta_name=text("etlMetaName"),
            meta_key=text("etlMetaKey"),
            meta_tag=text("etlMetaTag"),
            meta_value=value,
        )


class EtlMetaStore:
    """The ETL meta records of one project."""

    def __init__(self, project: LogProject) -> None:
        self.project = project

    def _send_meta(self, method: str, meta: EtlMeta) -> None:
        try:
            body = json.dumps(meta.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise ClientError(str(exc)) from exc
        headers = {
            "x-log-bodyrawsize": str(len(body)),
            "Content-Type": "application/json",
            "Accept-Encoding": "deflate",
        }
        self.project.request(method, f"/{ETL_META_URI}", headers, body)

    def create(self, meta: EtlMeta) -> None:
        """Store a new meta record."""
        self._send_meta("POST", meta)

    def update(self, meta: EtlMeta) -> None:
        """Replace an existing meta record."""
        self._send_meta("PUT", meta)

    def delete(self, meta_name: str, meta_key: str) -> None:
        """Delete the record of the given name and key, whatever its tag."""
        uri = (
            f"/{ETL_META_URI}?etlMetaName={_q(meta_name)}&etlMetaKey={_q(meta_key)}"
            f"&etlMetaTag={_q(ETL_META_ALL_TAG_MATCH)}"
        )
        self.project.request("DELETE", uri, {"x-log-bodyrawsize": "0"})

    def _list(
        self, meta_name: str, meta_key: str, meta_tag: str, offset: int, size: int
    ) -> tuple[int, int, list[EtlMeta]]:
        uri = (
            f"/{ETL_META_URI}?offset={offset}&size={size}&etlMetaName={_q(meta_name)}"
            f"&etlMetaKey={_q(meta_key)}&etlMetaTag={_q(meta_tag)}"
        )
        body = _json_object(self.project.request("GET", uri, {"x-log-bodyrawsize": "0"}).body)
        total = _int(_lookup(body, "total", 0))
        count = _int(_lookup(body, "count", 0))
        items = _lookup(body, "etlMetaList")
        if count == 0 or not isinstance(items, list) or not items:
            return total, count, []
        metas = []
        for item in items:
            if not isinstance(item, Mapping):
                raise ClientError(f"invalid etl meta entry: {item!r}")
            metas.append(EtlMeta._from_listing(item))
        return total, count, metas

    def get(self, meta_name: str, meta_key: str) -> EtlMeta | None:
        """The record of the given name and key, or None if there is none."""
        _, count, metas = self._list(meta_name, meta_key, ETL_META_ALL_TAG_MATCH, 0, 1)
        if count == 0 or not metas:
            return None
        return metas[0]

    def list(self, meta_name: str, offset: int, size: int) -> tuple[int, int, list[EtlMeta]]:
        """Total, count returned, and the records of a name, any tag."""
        return self._list(meta_name, "", ETL_META_ALL_TAG_MATCH, offset, size)

    def list_with_tag(
        self, meta_name: str, meta_tag: str, offset: int, size: int
    ) -> tuple[int, int, list[EtlMeta]]:
        """Total, count returned, and the records of a name carrying a tag."""
        return self._list(meta_name, "", meta_tag, offset, size)

    def list_names(self, offset: int, size: int) -> tuple[int, int, list[str]]:
        """Total, count returned, and the meta names of the project."""
        uri = f"/{ETL_META_NAME_URI}?offset={offset}&size={size}"
        body = _json_object(self.project.request("GET", uri, {"x-log-bodyrawsize": "0"}).body)
        return (
            _int(_lookup(body, "total", 0)),
            _int(_lookup(body, "count", 0)),
            _str_list(_lookup(body, "etlMetaNameList")),
        )