"""
HTTP-реализации remote-слоя (requests).

Document API:
- GET    {base}/documents/{collection}/{key}
- PATCH  {base}/documents/{collection}/{key}       (merge)
- DELETE {base}/documents/{collection}/{key}       (404 = ok)
- POST   {base}/documents/{collection}:query       {"where": {...}}

Backend API:
- POST   {base}/{resource}

Классификация ошибок:
- сеть / таймаут / 408,425,429,5xx -> TransientNetworkError
- прочие 4xx                       -> RemoteError
"""

from __future__ import annotations

import time
from typing import Any
from urllib.parse import quote

import requests

from attendance_sync.common.config import Settings, get_settings
from attendance_sync.common.errors import RemoteError, TransientNetworkError
from attendance_sync.common.logging import get_project_logger

from .base import Document

log = get_project_logger()

RETRYABLE_HTTP_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class HttpClient:
    def __init__(
        self,
        *,
        api_base: str,
        token: str | None = None,
        timeout_sec: float = 10.0,
        retries: int = 1,
        backoff_sec: float = 0.3,
        session: requests.Session | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.token = token
        self.timeout_sec = timeout_sec
        self.retries = max(0, int(retries))
        self.backoff_sec = max(0.0, float(backoff_sec))
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> HttpClient:
        s = settings or get_settings()
        return cls(
            api_base=s.remote_api_base,
            token=s.remote_api_token,
            timeout_sec=float(s.remote_timeout_sec),
            retries=int(s.remote_http_retries),
            backoff_sec=max(0, int(s.remote_http_backoff_ms)) / 1000.0,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        json_payload: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> requests.Response | None:
        """
        None — только при allow_404 и ответе 404.
        """
        method_u = method.upper()
        url = f"{self.api_base}/{path.lstrip('/')}"
        for attempt in range(self.retries + 1):
            try:
                resp = self.session.request(
                    method_u,
                    url,
                    json=json_payload,
                    headers=self._headers(),
                    timeout=self.timeout_sec,
                )
            except requests.RequestException as e:
                if attempt < self.retries:
                    time.sleep(self.backoff_sec * (2**attempt))
                    continue
                log.warning(
                    "remote_http_unreachable",
                    extra={"payload": {"method": method_u, "path": path, "err": str(e)[:300]}},
                )
                raise TransientNetworkError(
                    f"{method_u} {path} failed: network error",
                    {"err": str(e)[:300], "attempts": attempt + 1},
                ) from e

            status = int(resp.status_code)
            if status == 404 and allow_404:
                return None
            if status in RETRYABLE_HTTP_STATUS_CODES:
                if attempt < self.retries:
                    time.sleep(self.backoff_sec * (2**attempt))
                    continue
                raise TransientNetworkError(
                    f"{method_u} {path} failed: HTTP {status}",
                    {"status": status, "text_head": (resp.text or "")[:300]},
                )
            if status >= 400:
                raise RemoteError(
                    f"{method_u} {path} failed: HTTP {status}",
                    {"status": status, "text_head": (resp.text or "")[:300]},
                )
            return resp
        raise TransientNetworkError(f"{method_u} {path} failed")  # pragma: no cover

    @staticmethod
    def json_body(resp: requests.Response | None) -> Any:
        if resp is None or not (resp.content or b"").strip():
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError(
                "Remote returned invalid JSON", {"text_head": (resp.text or "")[:300]}
            ) from e


def _doc_path(collection: str, key: str | None = None) -> str:
    base = "documents/" + "/".join(quote(p, safe="") for p in collection.split("/"))
    if key is None:
        return base
    return f"{base}/{quote(str(key), safe='')}"


class HttpDocumentGateway:
    def __init__(self, client: HttpClient) -> None:
        self.client = client

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        resp = self.client.request("GET", _doc_path(collection, key), allow_404=True)
        if resp is None:
            return None
        body = self.client.json_body(resp)
        if body is None:
            return None
        if not isinstance(body, dict):
            raise RemoteError("Document body must be an object", {"collection": collection})
        data = body.get("data", body)
        return data if isinstance(data, dict) else {}

    def put(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        self.client.request("PATCH", _doc_path(collection, key), json_payload=fields)

    def delete(self, collection: str, key: str) -> None:
        self.client.request("DELETE", _doc_path(collection, key), allow_404=True)

    def query(self, collection: str, filters: dict[str, Any]) -> list[Document]:
        resp = self.client.request(
            "POST", _doc_path(collection) + ":query", json_payload={"where": filters}
        )
        body = self.client.json_body(resp) or {}
        rows = body.get("documents", []) if isinstance(body, dict) else body
        out: list[Document] = []
        for row in rows or []:
            if not isinstance(row, dict) or row.get("key") is None:
                continue
            data = row.get("data")
            out.append(Document(key=str(row["key"]), data=data if isinstance(data, dict) else {}))
        return out


class HttpBackendApi:
    def __init__(self, client: HttpClient) -> None:
        self.client = client

    def submit(self, resource: str, payload: dict[str, Any]) -> None:
        self.client.request("POST", resource, json_payload=payload)
