import httpx
import pytest

from neighborcare.models.domain import Coordinate
from neighborcare.services.geospatial import distance_meters
from neighborcare.services.routing.estimator import RouteEstimator
from neighborcare.services.routing.osrm_client import OSRMClient, decode_polyline

from helpers import DummyRouting, UnreachableRouting

START = Coordinate(12.9720, 77.5950)
END = Coordinate(12.9716, 77.5946)
# Example polyline from the Google encoding documentation.
SAMPLE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def _osrm_client(monkeypatch: pytest.MonkeyPatch, handler, **kwargs) -> OSRMClient:
    client = OSRMClient(base_url="http://osrm.test", backoff_seconds=0.0, **kwargs)
    monkeypatch.setattr(client, "_get_client", lambda: httpx.Client(transport=httpx.MockTransport(handler)))
    return client


def _ok_body() -> dict:
    return {
        "code": "Ok",
        "routes": [{"geometry": SAMPLE_POLYLINE, "distance": 512.4, "duration": 75.2}],
    }


def test_decode_polyline():
    assert decode_polyline(SAMPLE_POLYLINE) == [
        (38.5, -120.2),
        (40.7, -120.95),
        (43.252, -126.453),
    ]


def test_estimate_uses_routing_service():
    routing = DummyRouting(duration_seconds=90.0)
    path = RouteEstimator(routing).estimate_route(START, END, incident_id="I1", responder_id="R1")

    assert routing.calls == [(START.longitude, START.latitude, END.longitude, END.latitude)]
    assert path.degraded is False
    assert path.polyline[0] == START
    assert path.polyline[-1] == END
    assert path.distance_meters == 120.0
    assert path.duration_seconds == 90.0
    assert (path.incident_id, path.responder_id) == ("I1", "R1")


def test_unreachable_routing_falls_back_to_straight_line():
    path = RouteEstimator(UnreachableRouting()).estimate_route(START, END)

    assert path.polyline == [START, END]
    assert path.distance_meters == distance_meters(START, END)
    assert path.duration_seconds is None
    assert path.degraded is True


def test_missing_routing_service_falls_back():
    path = RouteEstimator(None).estimate_route(START, END)
    assert path.degraded is True
    assert path.polyline == [START, END]


def test_malformed_routing_payload_falls_back():
    class Broken:
        def route(self, *args):
            return {"coordinates": [[1.0]], "distance_meters": "n/a"}

    path = RouteEstimator(Broken()).estimate_route(START, END)
    assert path.degraded is True


def test_osrm_client_parses_route(monkeypatch: pytest.MonkeyPatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_ok_body())

    result = _osrm_client(monkeypatch, handler).route(77.5950, 12.9720, 77.5946, 12.9716)

    assert seen[0].url.path == "/route/v1/driving/77.595,12.972;77.5946,12.9716"
    assert seen[0].url.params["geometries"] == "polyline"
    assert result["coordinates"][0] == [-120.2, 38.5]
    assert result["distance_meters"] == 512.4
    assert result["duration_seconds"] == 75.2


def test_osrm_client_retries_server_errors(monkeypatch: pytest.MonkeyPatch):
    responses = iter([httpx.Response(503), httpx.Response(200, json=_ok_body())])

    result = _osrm_client(monkeypatch, lambda request: next(responses), max_retries=1).route(0, 0, 1, 1)

    assert result["distance_meters"] == 512.4


def test_osrm_client_reports_connection_failures(monkeypatch: pytest.MonkeyPatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _osrm_client(monkeypatch, handler, max_retries=1)
    with pytest.raises(ConnectionError):
        client.route(0, 0, 1, 1)


def test_osrm_client_rejects_no_route(monkeypatch: pytest.MonkeyPatch):
    client = _osrm_client(
        monkeypatch, lambda request: httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})
    )
    with pytest.raises(ValueError, match="Impossible route"):
        client.route(0, 0, 1, 1)


def test_estimator_falls_back_when_osrm_is_down(monkeypatch: pytest.MonkeyPatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    path = RouteEstimator(_osrm_client(monkeypatch, handler, max_retries=0)).estimate_route(START, END)

    assert path.degraded is True
    assert path.duration_seconds is None
    assert path.distance_meters == distance_meters(START, END)


def test_osrm_client_requires_base_url(monkeypatch: pytest.MonkeyPatch):
    from neighborcare.services.routing import osrm_client

    monkeypatch.setattr(osrm_client.settings, "osrm_base_url", None)
    with pytest.raises(ValueError):
        OSRMClient()
