import json
import os
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from prom_cli import cli
from prom_cli.prometheus import PrometheusClient

BASE_URL = "http://prom.test"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.startswith("PROM_CLI_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))


def ok(data: Any) -> Tuple[int, Any]:
    return 200, {"status": "success", "data": data}


def make_client(routes: Dict[str, Any], seen: List[httpx.Request]) -> PrometheusClient:
    """
    routes: path -> (status, json body) | (status, str body) | callable(request) -> httpx.Response
    """

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        status, body = route
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, content=json.dumps(body).encode(), headers={"Content-Type": "application/json"})

    return PrometheusClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


@pytest.fixture
def prom(monkeypatch) -> Callable[[Dict[str, Any]], List[httpx.Request]]:
    """Point the CLI at a fake Prometheus; returns the list of requests it received."""

    def install(routes: Dict[str, Any]) -> List[httpx.Request]:
        seen: List[httpx.Request] = []
        monkeypatch.setattr(cli, "build_client", lambda settings: make_client(routes, seen))
        return seen

    return install
