import httpx
import pytest

from conftest import make_client, ok
from prom_cli.errors import AuthError, ServerError, TransportError
from prom_cli.prometheus import PrometheusClient, unwrap
from prom_cli.validate import QueryRangeParams, TimeWindow


def test_unwrap_success_and_error():
    assert unwrap({"status": "success", "data": [1]}) == [1]
    with pytest.raises(ServerError) as ei:
        unwrap({"status": "error", "errorType": "bad_data", "error": "parse error at char 3"})
    assert ei.value.exit_code == 1
    assert "parse error" in ei.value.hint

    with pytest.raises(ServerError) as ei:
        unwrap({"status": "error", "errorType": "timeout", "error": "query timed out"})
    assert ei.value.exit_code == 2


def test_query_instant_params():
    seen = []
    c = make_client({"/api/v1/query": ok({"resultType": "vector", "result": []})}, seen)
    assert c.query_instant("up", ts=1700000000) == {"resultType": "vector", "result": []}
    assert seen[0].url.params["query"] == "up"
    assert seen[0].url.params["time"] == "1700000000"
    assert seen[0].headers["Accept"] == "application/json"


def test_query_range_params():
    seen = []
    c = make_client({"/api/v1/query_range": ok({"resultType": "matrix", "result": []})}, seen)
    c.query_range(QueryRangeParams(query="up", start=10, end=20, step=5))
    params = seen[0].url.params
    assert (params["start"], params["end"], params["step"]) == ("10", "20", "5")


def test_series_repeats_match_param():
    seen = []
    c = make_client({"/api/v1/series": ok([{"__name__": "up"}])}, seen)
    assert c.series(["up", '{job="node"}'], TimeWindow(start=1)) == [{"__name__": "up"}]
    assert seen[0].url.params.get_list("match[]") == ["up", '{job="node"}']
    assert seen[0].url.params["start"] == "1"
    assert "end" not in seen[0].url.params


def test_label_values():
    seen = []
    c = make_client({"/api/v1/label/job/values": ok(["node"])}, seen)
    assert c.label_values("job", TimeWindow(end=5)) == ["node"]
    assert seen[0].url.params["end"] == "5"


def test_error_envelope_on_http_400():
    seen = []
    body = {"status": "error", "errorType": "bad_data", "error": "bad"}
    c = make_client({"/api/v1/query": (400, body)}, seen)
    with pytest.raises(ServerError):
        c.query_instant("up{")


def test_auth_failure():
    c = make_client({"/api/v1/labels": (401, "unauthorized")}, [])
    with pytest.raises(AuthError) as ei:
        c.label_names()
    assert ei.value.exit_code == 2


def test_non_json_response():
    c = make_client({"/api/v1/labels": (502, "<html>bad gateway</html>")}, [])
    with pytest.raises(ServerError):
        c.label_names()


def test_connection_failure():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    c = PrometheusClient("http://prom.test", transport=httpx.MockTransport(boom))
    with pytest.raises(TransportError) as ei:
        c.targets()
    assert "connection refused" in ei.value.hint


def test_auth_headers():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"status": "success", "data": []})

    PrometheusClient("http://p", bearer_token="abc", transport=httpx.MockTransport(handler)).label_names()
    PrometheusClient("http://p", basic_auth=("u", "p"), transport=httpx.MockTransport(handler)).label_names()
    assert seen[0].headers["Authorization"] == "Bearer abc"
    assert seen[1].headers["Authorization"].startswith("Basic ")


def test_status():
    routes = {
        "/-/healthy": (200, "Prometheus Server is Healthy."),
        "/-/ready": (503, "Service Unavailable"),
        "/api/v1/status/buildinfo": ok({"version": "2.48.0", "goVersion": "go1.21"}),
    }
    st = make_client(routes, []).status()
    assert st == {"healthy": True, "ready": False, "buildInfo": {"version": "2.48.0", "goVersion": "go1.21"}}
