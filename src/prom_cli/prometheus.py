from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .errors import AuthError, PromCliError, ServerError, TransportError
from .validate import QueryRangeParams, TimeWindow

logger = logging.getLogger(__name__)

_TROUBLESHOOTING = (
    "Troubleshooting:\n"
    "  - Check if Prometheus is running\n"
    "  - Verify the URL is correct\n"
    "  - Check network connectivity"
)


def unwrap(payload: Any) -> Any:
    """
    Return `data` from a Prometheus API envelope.
    A status=error envelope stops here, before anything is normalized.
    """
    if not isinstance(payload, dict):
        raise ServerError(f"Prometheus API returned non-JSON object: {payload!r}")
    if payload.get("status") != "success":
        err_type = payload.get("errorType")
        err = payload.get("error") or "unknown error"
        if err_type == "bad_data":
            raise ServerError("Invalid PromQL expression.", error_type=err_type, hint=f"Server response: {err}")
        raise ServerError(f"Prometheus API error ({err_type}): {err}", error_type=err_type)
    return payload.get("data")


@dataclass
class PrometheusClient:
    base_url: str
    timeout_seconds: float = 10.0
    bearer_token: Optional[str] = None
    basic_auth: Optional[Tuple[str, str]] = None
    transport: Optional[httpx.BaseTransport] = None

    def _headers(self) -> Dict[str, str]:
        h: Dict[str, str] = {"Accept": "application/json"}
        if self.bearer_token:
            h["Authorization"] = f"Bearer {self.bearer_token}"
        return h

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    def _send(self, path: str, params: Any = None) -> httpx.Response:
        logger.debug("GET %s params=%s", path, params)
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                r = client.get(self._url(path), params=params, headers=self._headers(), auth=self.basic_auth)
        except httpx.HTTPError as e:
            raise TransportError(
                "Could not connect to Prometheus server.",
                hint=f"URL: {self.base_url}\nReason: {e}\n\n{_TROUBLESHOOTING}",
            ) from e
        logger.debug("GET %s -> %s", path, r.status_code)
        if r.status_code in (401, 403):
            raise AuthError(
                f"Authentication failed ({r.status_code} {r.reason_phrase}).",
                hint="Hint: Check your username/password or token.\nRun 'prom config show' to view current settings.",
            )
        return r

    def _get(self, path: str, params: Any = None) -> Any:
        r = self._send(path, params)
        try:
            payload = r.json()
        except ValueError as e:
            raise ServerError(f"Prometheus returned a non-JSON response: GET {path} (HTTP {r.status_code})") from e
        return unwrap(payload)

    # ---- queries ----

    def query_instant(self, promql: str, ts: Optional[int] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"query": promql}
        if ts is not None:
            params["time"] = ts
        return self._get("/api/v1/query", params=params)

    def query_range(self, params: QueryRangeParams) -> Dict[str, Any]:
        return self._get(
            "/api/v1/query_range",
            params={"query": params.query, "start": params.start, "end": params.end, "step": params.step},
        )

    # ---- discovery ----

    def label_names(self, window: Optional[TimeWindow] = None) -> List[str]:
        return self._get("/api/v1/labels", params=(window or TimeWindow()).as_params()) or []

    def label_values(self, label: str, window: Optional[TimeWindow] = None) -> List[str]:
        return self._get(
            f"/api/v1/label/{quote(label, safe='')}/values",
            params=(window or TimeWindow()).as_params(),
        ) or []

    def series(self, matchers: List[str], window: Optional[TimeWindow] = None) -> List[Dict[str, str]]:
        params: List[Tuple[str, Any]] = [("match[]", m) for m in matchers]
        params.extend((window or TimeWindow()).as_params().items())
        return self._get("/api/v1/series", params=params) or []

    def targets(self) -> Dict[str, Any]:
        return self._get("/api/v1/targets")

    # ---- server status ----

    def _probe(self, path: str) -> bool:
        try:
            return self._send(path).status_code == 200
        except TransportError as e:
            logger.debug("probe %s failed: %s", path, e)
            return False

    def status(self) -> Dict[str, Any]:
        build_info: Optional[Dict[str, Any]] = None
        try:
            build_info = self._get("/api/v1/status/buildinfo")
        except PromCliError as e:
            logger.debug("build info unavailable: %s", e)
        return {
            "healthy": self._probe("/-/healthy"),
            "ready": self._probe("/-/ready"),
            "buildInfo": build_info,
        }
