"""
Selection state machine for the realtime view.

    NoBranch --select_branch--> BranchOnly --select_sensor--> BranchAndSensor
                                     ^                              |
                                     +------ select_branch ---------+

The machine owns the live subscription and the reading history; both
exist only while in BranchAndSensor.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Union

from coldtrack.core.errors import AuthError, ColdTrackError, TransportError
from coldtrack.core.logging import get_logger
from coldtrack.realtime.feed import LiveFeedClient
from coldtrack.realtime.history import ReadingHistory, format_last_update
from coldtrack.realtime.store import BRANCH_KEY, SENSOR_KEY, SelectionStore
from coldtrack.schemas import LiveReading, SensorRef
from coldtrack.services.backend_client import BackendClient


logger = get_logger(__name__)


@dataclass(frozen=True)
class NoBranch:
    name = "no_branch"


@dataclass(frozen=True)
class BranchOnly:
    branch_id: str
    name = "branch_only"


@dataclass(frozen=True)
class BranchAndSensor:
    branch_id: str
    sensor_id: str
    name = "branch_and_sensor"


SelectionState = Union[NoBranch, BranchOnly, BranchAndSensor]


class SelectionError(ColdTrackError):
    """A selection was requested that the current state does not allow."""


class SelectionStateMachine:
    """
    Drives which branch/sensor pair is live.

    Usage:
        machine = SelectionStateMachine(client, feed, store)
        await machine.initialize()
        await machine.select_branch("5")
        await machine.select_sensor("12")
    """

    def __init__(
        self,
        client: BackendClient,
        feed: LiveFeedClient,
        store: SelectionStore,
        history: Optional[ReadingHistory] = None,
    ):
        self.client = client
        self.feed = feed
        self.store = store
        self.history = history or ReadingHistory()
        self.state: SelectionState = NoBranch()
        self.sensors: list[SensorRef] = []
        self.sensor: Optional[SensorRef] = None
        self.latest: Optional[LiveReading] = None
        self._listeners: list[Callable[[LiveReading], None]] = []
        self._branch_seq = 0
        self._transition_seq = 0
        self.restore_pending = False

    @property
    def branch_id(self) -> Optional[str]:
        return getattr(self.state, "branch_id", None)

    @property
    def sensor_id(self) -> Optional[str]:
        return getattr(self.state, "sensor_id", None)

    def add_listener(self, callback: Callable[[LiveReading], None]) -> None:
        """Register a callback for every reading accepted into the history."""
        self._listeners.append(callback)

    async def initialize(self) -> SelectionState:
        """
        Restore the persisted selection.

        A persisted sensor is only honored if it appears in the sensor list
        fetched for the persisted branch; otherwise the state is BranchOnly.
        """
        branch_id = await self.store.get(BRANCH_KEY)
        sensor_id = await self.store.get(SENSOR_KEY)

        logger.info("selection.restoring", branch_id=branch_id, sensor_id=sensor_id)

        if not branch_id:
            self.state = NoBranch()
            self.restore_pending = False
            return self.state

        try:
            await self._enter_branch(branch_id, restore_sensor_id=sensor_id)
        except (AuthError, TransportError):
            # Sensor list unavailable (typically no session yet); retried by resume()
            self.restore_pending = True
            raise

        self.restore_pending = False
        return self.state

    async def resume(self) -> SelectionState:
        """
        Finish a restore that could not fetch the sensor list, e.g. because
        it ran before sign-in. A no-op once a restore or explicit selection
        has completed.
        """
        if not self.restore_pending:
            return self.state
        return await self.initialize()

    async def select_branch(self, branch_id: Union[int, str]) -> SelectionState:
        """
        Make `branch_id` the active branch and load its sensors.

        Re-selecting the active branch only refreshes the sensor list.
        """
        branch_id = str(branch_id)
        self.restore_pending = False

        if branch_id == self.branch_id:
            await self._load_sensors(branch_id, self._branch_seq)
            return self.state

        await self._enter_branch(branch_id, restore_sensor_id=None)
        return self.state

    async def select_sensor(self, sensor_id: Union[int, str]) -> SelectionState:
        """
        Make `sensor_id` live: clears the history and re-subscribes.

        Raises:
            SelectionError: No branch selected, or the sensor is not one of
                the active branch's sensors
        """
        if isinstance(self.state, NoBranch):
            raise SelectionError("Seleccione una sucursal antes de elegir una cámara.")

        sensor = self._find_sensor(str(sensor_id))
        if sensor is None:
            raise SelectionError(f"La cámara {sensor_id} no pertenece a la sucursal {self.branch_id}.")

        await self._enter_sensor(sensor)
        return self.state

    def close(self) -> None:
        """Release the live subscription."""
        self._transition_seq += 1
        self.feed.cancel()

    async def _enter_branch(self, branch_id: str, restore_sensor_id: Optional[str]) -> None:
        self._leave_sensor()
        self._branch_seq += 1
        seq = self._branch_seq

        self.state = BranchOnly(branch_id)
        self.sensors = []
        logger.info("selection.branch_selected", branch_id=branch_id)

        loaded = await self._load_sensors(branch_id, seq)
        if not loaded or not restore_sensor_id:
            return

        sensor = self._find_sensor(restore_sensor_id)
        if sensor is None:
            logger.info(
                "selection.restore_sensor_missing",
                branch_id=branch_id,
                sensor_id=restore_sensor_id,
            )
            return

        await self._enter_sensor(sensor)

    async def _load_sensors(self, branch_id: str, seq: int) -> bool:
        """
        Fetch the branch's sensors. Returns False when another branch was
        selected while the request was in flight and the answer is stale.
        """
        sensors = await self.client.list_sensors(branch_id)

        if seq != self._branch_seq or self.branch_id != branch_id:
            logger.debug("selection.stale_sensor_list_discarded", branch_id=branch_id)
            return False

        self.sensors = sensors
        logger.info("selection.sensors_loaded", branch_id=branch_id, sensor_count=len(sensors))
        return True

    async def _enter_sensor(self, sensor: SensorRef) -> None:
        self._leave_sensor()
        transition = self._transition_seq

        branch_id = self.branch_id
        self.sensor = sensor
        self.state = BranchAndSensor(branch_id, str(sensor.id))

        try:
            await self.store.set(SENSOR_KEY, str(sensor.id))
            if transition == self._transition_seq:
                await self.store.set(BRANCH_KEY, branch_id)
        except Exception as e:
            # Losing persistence only affects the next restart
            logger.warning(
                "selection.persist_failed",
                branch_id=branch_id,
                sensor_id=sensor.id,
                error=str(e),
            )

        if transition != self._transition_seq:
            # Another selection took over while persisting; it owns the feed now
            logger.info("selection.sensor_superseded", branch_id=branch_id, sensor_id=sensor.id)
            return

        self.feed.subscribe(sensor.feed_path, self._on_reading)
        logger.info(
            "selection.sensor_selected",
            branch_id=branch_id,
            sensor_id=sensor.id,
            feed_path=sensor.feed_path,
        )

    def _leave_sensor(self) -> None:
        self._transition_seq += 1
        self.feed.cancel()
        self.history.clear()
        self.sensor = None
        self.latest = None

    def _find_sensor(self, sensor_id: str) -> Optional[SensorRef]:
        return next((s for s in self.sensors if str(s.id) == sensor_id), None)

    def _on_reading(self, reading: LiveReading) -> None:
        self.latest = reading
        self.history.append_reading(reading)
        for listener in self._listeners:
            listener(reading)

    def snapshot(self) -> dict:
        """Plain-data view of the machine for rendering."""
        latest = None
        if self.latest is not None:
            latest = {
                "temperature": self.latest.temperature,
                "state": self.latest.state,
                "timestamp_seconds": self.latest.timestamp_seconds,
                "last_update": format_last_update(self.latest, self.history.tz),
            }

        return {
            "state": self.state.name,
            "branch_id": self.branch_id,
            "sensor_id": self.sensor_id,
            "sensors": [s.model_dump() for s in self.sensors],
            "latest": latest,
            "history": [p.model_dump() for p in self.history.points],
        }
