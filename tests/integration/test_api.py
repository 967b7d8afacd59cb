"""
Integration tests for the HTTP surface.

The app's components are wired by hand against a fake backend and a fake
feed transport; the lifespan is not run.
"""
import httpx
import pytest

from coldtrack.core.errors import AuthError
from coldtrack.core.session import SessionContext
from coldtrack.main import app
from coldtrack.realtime.feed import LiveFeedClient
from coldtrack.realtime.selection import SelectionStateMachine
from coldtrack.realtime.store import BRANCH_KEY, SENSOR_KEY, MemorySelectionStore
from coldtrack.services.analytics import AnalyticsCoordinator
from coldtrack.workers.reporting import ReportSink


@pytest.fixture
def backend_handler(make_sensor, analytics_body):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        path = request.url.path
        if path == "/api/auth/verify-token/":
            return httpx.Response(200, json={"user": {"id": 1, "email": "admin@frio.cl", "nombre": "Ana", "rol": "ADMIN"}})
        if path == "/api/sucursales/activas/":
            return httpx.Response(200, json=[{"id": 1, "nombre": "Central"}])
        if path == "/api/camaras/":
            return httpx.Response(200, json=[make_sensor(10, 1), make_sensor(11, 1)])
        if path == "/api/dashboard/analisis-ejecutivo/":
            if request.url.params["fechaInicio"] == "2099-01-01":
                return httpx.Response(500)
            return httpx.Response(200, json=analytics_body())
        if path == "/api/dashboard/guardar-resumen-ejecutivo/":
            return httpx.Response(201, json={"id": 77})
        return httpx.Response(404)

    handler.calls = calls
    return handler


@pytest.fixture
async def api(backend_handler, backend_factory, feed_transport, history, tmp_path):
    session = SessionContext()
    client = backend_factory(session, backend_handler)
    app.state.session = session
    app.state.client = client
    app.state.store = MemorySelectionStore()
    app.state.feed = LiveFeedClient(feed_transport, path_template="/status/{feed_path}/live")
    app.state.selection = SelectionStateMachine(client, app.state.feed, app.state.store, history)
    app.state.coordinator = AnalyticsCoordinator(client, session, timeout=5.0)
    app.state.report_sink = ReportSink(str(tmp_path))

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    await client.close()


async def sign_in(api):
    response = await api.post("/api/v1/session", json={"token": "id-token"})
    assert response.status_code == 201


class TestHealth:
    async def test_health(self, api):
        """Test liveness and the request id header."""
        response = await api.get("/health")

        assert response.status_code == 200
        assert response.json()["selection"] == "no_branch"
        assert "X-Request-ID" in response.headers

    async def test_metrics(self, api):
        """Test the Prometheus exposition."""
        response = await api.get("/metrics")

        assert response.status_code == 200
        assert "coldtrack_analytics_queries_total" in response.text


class TestSession:
    async def test_login_and_logout(self, api):
        """Test the session lifecycle."""
        response = await api.post("/api/v1/session", json={"token": "id-token"})

        assert response.status_code == 201
        assert response.json()["data"]["is_admin"] is True

        response = await api.delete("/api/v1/session")
        assert response.status_code == 204

    async def test_requests_without_session_rejected(self, api):
        """Test that protected endpoints answer 401 before login."""
        response = await api.put("/api/v1/realtime/branch", json={"branch_id": 1})

        assert response.status_code == 401


class TestRealtime:
    async def test_select_branch_and_sensor(self, api, feed_transport):
        """Test the selection flow and live readings in the state."""
        await sign_in(api)

        response = await api.put("/api/v1/realtime/branch", json={"branch_id": 1})
        assert response.status_code == 200
        assert response.json()["data"]["state"] == "branch_only"
        assert len(response.json()["data"]["sensors"]) == 2

        response = await api.put("/api/v1/realtime/sensor", json={"sensor_id": 11})
        assert response.status_code == 200

        feed_transport.push_reading(-17.5, 1735689600)

        state = (await api.get("/api/v1/realtime/state")).json()["data"]
        assert state["state"] == "branch_and_sensor"
        assert state["sensor_id"] == "11"
        assert state["latest"]["temperature"] == -17.5
        assert len(state["history"]) == 1

    async def test_unknown_sensor_conflict(self, api):
        """Test that a sensor outside the branch answers 409."""
        await sign_in(api)
        await api.put("/api/v1/realtime/branch", json={"branch_id": 1})

        response = await api.put("/api/v1/realtime/sensor", json={"sensor_id": 99})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_SELECTION"

    async def test_active_branches(self, api):
        """Test the branch list."""
        await sign_in(api)

        response = await api.get("/api/v1/realtime/branches")

        assert response.json()["data"][0]["name"] == "Central"


class TestAnalytics:
    async def test_query_returns_result_and_badges(self, api):
        """Test a successful analytics query."""
        await sign_in(api)

        response = await api.post(
            "/api/v1/analytics/query",
            json={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["result"]["kpis"]["totalEventos"] == 42
        assert data["interpretation"]["average_temperature"]["rating"] == "excellent"
        assert data["variance_trend"]["events"] == "up"

        response = await api.get("/api/v1/analytics/result")
        assert response.status_code == 200

    async def test_inverted_range_is_422_without_backend_call(self, api, backend_handler):
        """Test that an inverted range never reaches the backend."""
        await sign_in(api)
        before = len(backend_handler.calls)

        response = await api.post(
            "/api/v1/analytics/query",
            json={"start_date": "2024-02-01", "end_date": "2024-01-01"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVERTED_RANGE"
        assert len(backend_handler.calls) == before

    async def test_missing_range_is_422(self, api):
        """Test that a missing bound answers 422."""
        await sign_in(api)

        response = await api.post("/api/v1/analytics/query", json={"start_date": "2024-01-01"})

        assert response.json()["error"]["code"] == "MISSING_RANGE"

    async def test_backend_failure_is_502(self, api):
        """Test that a backend error status answers 502."""
        await sign_in(api)

        response = await api.post(
            "/api/v1/analytics/query",
            json={"start_date": "2099-01-01", "end_date": "2099-01-31"},
        )

        assert response.status_code == 502

    async def test_result_404_before_query(self, api):
        """Test that no result is shown before the first query."""
        assert (await api.get("/api/v1/analytics/result")).status_code == 404

    async def test_save_summary(self, api):
        """Test storing the displayed result."""
        await sign_in(api)
        await api.post("/api/v1/analytics/query", json={"start_date": "2024-01-01", "end_date": "2024-01-31"})

        response = await api.post("/api/v1/analytics/summaries", json={"notes": "ok"})

        assert response.status_code == 201
        assert response.json()["data"] == {"id": 77}

    async def test_save_summary_without_result_conflict(self, api):
        """Test that saving with nothing displayed answers 409."""
        await sign_in(api)

        response = await api.post("/api/v1/analytics/summaries", json={})

        assert response.status_code == 409

    async def test_report_download(self, api):
        """Test downloading an Excel report of the displayed result."""
        await sign_in(api)
        await api.post("/api/v1/analytics/query", json={"start_date": "2024-01-01", "end_date": "2024-01-31"})

        response = await api.get("/api/v1/analytics/report", params={"format": "excel"})

        assert response.status_code == 200
        assert "Reporte_Ejecutivo_2024-01-01_2024-01-31.xlsx" in response.headers["content-disposition"]

    async def test_report_unknown_format_422(self, api):
        """Test that unsupported formats are rejected by validation."""
        response = await api.get("/api/v1/analytics/report", params={"format": "docx"})

        assert response.status_code == 422


class TestSelectionRestore:
    async def test_restore_finished_after_sign_in(
        self, api, backend_handler, backend_factory, feed_transport, history
    ):
        """Test that a selection persisted before startup goes live once the user signs in."""
        session = app.state.session

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path != "/api/auth/verify-token/" and "Authorization" not in request.headers:
                return httpx.Response(401)
            return backend_handler(request)

        client = backend_factory(session, handler)
        app.state.client = client
        app.state.store = MemorySelectionStore({BRANCH_KEY: "1", SENSOR_KEY: "11"})
        app.state.selection = SelectionStateMachine(client, app.state.feed, app.state.store, history)

        # Startup runs before anyone has signed in
        with pytest.raises(AuthError):
            await app.state.selection.initialize()
        assert feed_transport.opened == []

        await sign_in(api)

        state = (await api.get("/api/v1/realtime/state")).json()["data"]
        assert state["state"] == "branch_and_sensor"
        assert state["branch_id"] == "1"
        assert state["sensor_id"] == "11"
        assert feed_transport.paths == ["/status/camaras/11/live"]

        await client.close()
