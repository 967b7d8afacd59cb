"""
Pytest configuration and shared fixtures.
"""
import json
from typing import Any, Callable, Optional

import httpx
import pytest

from coldtrack.core.session import SessionContext
from coldtrack.realtime.feed import LiveFeedClient
from coldtrack.realtime.history import ReadingHistory
from coldtrack.realtime.store import MemorySelectionStore
from coldtrack.schemas import UserProfile
from coldtrack.services.backend_client import BackendClient

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.option.asyncio_mode = "auto"


class FakeFeedHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeFeedTransport:
    """
    In-memory feed transport.

    Keeps every opened callback so tests can push values to a path even
    after it was cancelled, the way a late network callback would.
    """

    def __init__(self):
        self.opened: list[tuple[str, Callable[[Any], None], FakeFeedHandle]] = []

    def open(self, path: str, on_value: Callable[[Any], None]) -> FakeFeedHandle:
        handle = FakeFeedHandle()
        self.opened.append((path, on_value, handle))
        return handle

    @property
    def paths(self) -> list[str]:
        return [path for path, _, _ in self.opened]

    def push(self, value: Any, index: int = -1) -> None:
        _, on_value, _ = self.opened[index]
        on_value(value)

    def push_reading(self, temp: float, ts: float, state: str = "NORMAL", index: int = -1) -> None:
        self.push(json.dumps({"temp": temp, "state": state, "ts": ts}).encode(), index)


def sensor_payload(sensor_id: int, branch_id: int, name: Optional[str] = None) -> dict:
    return {
        "id": sensor_id,
        "nombre": name or f"Cámara {sensor_id}",
        "sucursal": branch_id,
        "firebase_path": f"camaras/{sensor_id}",
        "activa": True,
    }


def analytics_payload(**kpi_overrides) -> dict:
    kpis = {
        "temperaturaPromedio": -6.5,
        "variacionTemperatura": -1.2,
        "totalEventos": 42,
        "variacionEventos": 5.0,
        "horasDeshielo": 12.5,
        "variacionDeshielo": 0.0,
        "horasFalla": 1.5,
        "variacionFalla": -10.0,
        "porcentajeNormal": 96.3,
        "variacionNormal": 0.4,
    }
    kpis.update(kpi_overrides)
    return {
        "kpis": kpis,
        "comparacionAdaptativa": {
            "tipo": "semanal",
            "titulo": "Comparación semanal",
            "datos": [
                {"periodo": "Semana 1", "eventos": 20, "horasFalla": 0.5},
                {"periodo": "Semana 2", "eventos": 22, "horasFalla": 1.0},
            ],
        },
        "tendenciaAdaptativa": {
            "tipo": "diaria",
            "datos": [
                {"periodo": "2024-01-01", "eventos": 6, "horasCriticas": 0.0},
                {"periodo": "2024-01-02", "eventos": 8, "horasCriticas": 0.5},
            ],
        },
        "analisisEventos": {
            "distribucion": [
                {"estado": "Normal", "valor": 90, "porcentaje": 96.3},
                {"estado": "Falla", "valor": 3, "porcentaje": 3.7},
            ],
            "eventosCriticos": [
                {
                    "id": 7,
                    "camara": "Cámara 1 & Anexo",
                    "tipo": "FALLA",
                    "duracion": "1h 30m",
                    "tempMaxima": 5.2,
                    "estado": "RESUELTO",
                },
            ],
        },
        "temperaturas": [
            {"fecha": "2024-01-01", "tempPromedio": -6.0, "tempMaxima": -2.0},
            {"fecha": "2024-01-02", "tempPromedio": -7.0, "tempMaxima": 1.5},
        ],
        "rankingCamaras": {
            "masEventos": [{"id": 1, "nombre": "Cámara 1", "eventos": 30}],
            "masFallas": [{"id": 2, "nombre": "Cámara 2", "horasFalla": 1.5}],
        },
    }


def make_backend(
    session: SessionContext,
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs,
) -> BackendClient:
    return BackendClient(
        session,
        base_url="http://backend.test/api",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.fixture
def session():
    """Session signed in as an admin."""
    ctx = SessionContext()
    ctx.begin("test-token", UserProfile(id=1, email="admin@frio.cl", nombre="Ana", rol="ADMIN"))
    return ctx


@pytest.fixture
def feed_transport():
    return FakeFeedTransport()


@pytest.fixture
def feed(feed_transport):
    return LiveFeedClient(feed_transport, path_template="/status/{feed_path}/live")


@pytest.fixture
def store():
    return MemorySelectionStore()


@pytest.fixture
def history():
    return ReadingHistory(max_points=20, timezone="UTC")


@pytest.fixture
def make_sensor():
    return sensor_payload


@pytest.fixture
def analytics_body():
    return analytics_payload


@pytest.fixture
def backend_factory():
    return make_backend
