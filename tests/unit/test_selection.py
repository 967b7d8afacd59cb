"""
Unit tests for the selection state machine.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from coldtrack.core.errors import AuthError
from coldtrack.realtime.selection import (
    BranchAndSensor,
    BranchOnly,
    NoBranch,
    SelectionError,
    SelectionStateMachine,
)
from coldtrack.realtime.store import BRANCH_KEY, SENSOR_KEY, MemorySelectionStore
from coldtrack.schemas import SensorRef


@pytest.fixture
def sensors_by_branch(make_sensor):
    return {
        "1": [SensorRef.model_validate(make_sensor(10, 1)), SensorRef.model_validate(make_sensor(11, 1))],
        "2": [SensorRef.model_validate(make_sensor(20, 2))],
        "5": [SensorRef.model_validate(make_sensor(12, 5))],
    }


@pytest.fixture
def client(sensors_by_branch):
    client = MagicMock()

    async def list_sensors(branch_id):
        return sensors_by_branch.get(str(branch_id), [])

    client.list_sensors = AsyncMock(side_effect=list_sensors)
    return client


@pytest.fixture
def machine(client, feed, store, history):
    return SelectionStateMachine(client, feed, store, history)


class TestSelectionTransitions:
    """Tests for the NoBranch / BranchOnly / BranchAndSensor transitions."""

    async def test_starts_without_branch(self, machine):
        """Test the initial state."""
        assert isinstance(machine.state, NoBranch)
        assert machine.snapshot()["state"] == "no_branch"

    async def test_select_branch_loads_sensors(self, machine, client):
        """Test that choosing a branch fetches its sensors."""
        state = await machine.select_branch(1)

        assert state == BranchOnly("1")
        assert [s.id for s in machine.sensors] == [10, 11]
        client.list_sensors.assert_awaited_once_with("1")

    async def test_select_sensor_subscribes(self, machine, feed_transport, store):
        """Test that choosing a sensor opens its feed and persists both keys."""
        await machine.select_branch(1)
        state = await machine.select_sensor(10)

        assert state == BranchAndSensor("1", "10")
        assert feed_transport.paths == ["/status/camaras/10/live"]
        assert store.values == {BRANCH_KEY: "1", SENSOR_KEY: "10"}

    async def test_select_sensor_without_branch_rejected(self, machine):
        """Test that a sensor cannot be chosen before a branch."""
        with pytest.raises(SelectionError):
            await machine.select_sensor(10)

    async def test_select_sensor_from_other_branch_rejected(self, machine):
        """Test that only sensors of the active branch can be chosen."""
        await machine.select_branch(1)

        with pytest.raises(SelectionError):
            await machine.select_sensor(20)

        assert isinstance(machine.state, BranchOnly)

    async def test_branch_change_leaves_sensor(self, machine, feed_transport):
        """Test that switching branch cancels the feed and clears history."""
        await machine.select_branch(1)
        await machine.select_sensor(10)
        feed_transport.push_reading(-5.0, 100)

        await machine.select_branch(2)

        assert machine.state == BranchOnly("2")
        assert machine.history.points == []
        assert machine.latest is None
        assert feed_transport.opened[0][2].cancelled is True

    async def test_reselecting_same_branch_keeps_sensor(self, machine, client):
        """Test that re-selecting the active branch only refreshes its sensors."""
        await machine.select_branch(1)
        await machine.select_sensor(10)

        await machine.select_branch("1")

        assert machine.state == BranchAndSensor("1", "10")
        assert client.list_sensors.await_count == 2


class TestSensorSwitch:
    """Tests for switching the live sensor."""

    async def test_switch_clears_history_and_ignores_old_feed(self, machine, feed_transport):
        """Test that after switching, history holds only the new sensor's readings."""
        await machine.select_branch(1)
        await machine.select_sensor(10)
        feed_transport.push_reading(-5.0, 100)
        feed_transport.push_reading(-6.0, 101)

        await machine.select_sensor(11)
        # Late value from the first sensor's feed
        feed_transport.push_reading(99.0, 102, index=0)
        feed_transport.push_reading(-7.0, 103, index=1)

        assert machine.history.temperatures() == [-7.0]
        assert machine.latest.temperature == -7.0
        assert machine.sensor.id == 11

    async def test_readings_update_latest_and_listeners(self, machine, feed_transport):
        """Test that accepted readings reach latest, history and listeners."""
        seen = []
        machine.add_listener(seen.append)
        await machine.select_branch(1)
        await machine.select_sensor(10)

        feed_transport.push_reading(-4.5, 1735689600, state="NORMAL")

        snapshot = machine.snapshot()
        assert snapshot["latest"]["temperature"] == -4.5
        assert snapshot["latest"]["last_update"] == "01-01-2025 00:00:00"
        assert snapshot["history"] == [{"display_time": "00:00:00", "temperature": -4.5}]
        assert [r.temperature for r in seen] == [-4.5]

    async def test_close_cancels_feed(self, machine, feed, feed_transport):
        """Test that close releases the live subscription."""
        await machine.select_branch(1)
        await machine.select_sensor(10)

        machine.close()

        assert feed.current is None
        assert feed_transport.opened[0][2].cancelled is True


class TestStaleSensorList:
    """Tests for out-of-order sensor list responses."""

    async def test_stale_sensor_list_discarded(self, feed, store, history, sensors_by_branch):
        """Test that a slow answer for a previous branch does not overwrite the new one."""
        release_first = asyncio.Event()
        client = MagicMock()

        async def list_sensors(branch_id):
            if str(branch_id) == "1":
                await release_first.wait()
            return sensors_by_branch[str(branch_id)]

        client.list_sensors = AsyncMock(side_effect=list_sensors)
        machine = SelectionStateMachine(client, feed, store, history)

        first = asyncio.create_task(machine.select_branch(1))
        await asyncio.sleep(0)
        await machine.select_branch(2)
        release_first.set()
        await first

        assert machine.state == BranchOnly("2")
        assert [s.id for s in machine.sensors] == [20]


class TestInterleavedSensorSelection:
    """Tests for selections that overlap a slow persistence write."""

    @pytest.fixture
    def slow_store(self):
        release = asyncio.Event()
        store = MemorySelectionStore()
        original_set = store.set

        async def set_value(key, value):
            await release.wait()
            await original_set(key, value)

        store.set = set_value
        store.release = release
        return store

    async def test_branch_change_during_sensor_selection(
        self, client, feed, feed_transport, history, slow_store
    ):
        """Test that a sensor selection overtaken by a branch change never goes live."""
        machine = SelectionStateMachine(client, feed, slow_store, history)
        await machine.select_branch(1)

        pending = asyncio.create_task(machine.select_sensor(11))
        await asyncio.sleep(0)
        await machine.select_branch(2)
        slow_store.release.set()
        await pending

        assert machine.state == BranchOnly("2")
        assert machine.sensor is None
        assert feed.current is None
        assert feed_transport.opened == []
        assert BRANCH_KEY not in slow_store.values

    async def test_later_sensor_selection_owns_the_feed(
        self, client, feed, feed_transport, history, slow_store
    ):
        """Test that only the last of two overlapping sensor selections subscribes."""
        machine = SelectionStateMachine(client, feed, slow_store, history)
        await machine.select_branch(1)

        first = asyncio.create_task(machine.select_sensor(10))
        await asyncio.sleep(0)
        second = asyncio.create_task(machine.select_sensor(11))
        await asyncio.sleep(0)
        slow_store.release.set()
        await asyncio.gather(first, second)

        assert machine.state == BranchAndSensor("1", "11")
        assert feed_transport.paths == ["/status/camaras/11/live"]

        feed_transport.push_reading(-8.0, 100)
        assert machine.history.temperatures() == [-8.0]


class TestRestore:
    """Tests for restoring the persisted selection."""

    async def test_restore_branch_and_sensor(self, client, feed, history, feed_transport):
        """Test that a persisted sensor of the branch is re-subscribed."""
        store = MemorySelectionStore({BRANCH_KEY: "1", SENSOR_KEY: "11"})
        machine = SelectionStateMachine(client, feed, store, history)

        state = await machine.initialize()

        assert state == BranchAndSensor("1", "11")
        assert feed_transport.paths == ["/status/camaras/11/live"]

    async def test_restore_persisted_pair(self, client, feed, history):
        """Test that branch 5 with its sensor 12 restores to BranchAndSensor(5, 12)."""
        store = MemorySelectionStore({BRANCH_KEY: "5", SENSOR_KEY: "12"})
        machine = SelectionStateMachine(client, feed, store, history)

        assert await machine.initialize() == BranchAndSensor("5", "12")

    async def test_restore_unknown_sensor_stays_branch_only(self, client, feed, history, feed_transport):
        """Test that a persisted sensor missing from the branch is ignored."""
        store = MemorySelectionStore({BRANCH_KEY: "1", SENSOR_KEY: "20"})
        machine = SelectionStateMachine(client, feed, store, history)

        state = await machine.initialize()

        assert state == BranchOnly("1")
        assert feed_transport.opened == []

    async def test_restore_nothing(self, machine):
        """Test that an empty store leaves the machine without a branch."""
        assert isinstance(await machine.initialize(), NoBranch)

    async def test_persist_failure_does_not_block_selection(self, client, feed, history, feed_transport):
        """Test that a failing store only loses persistence."""
        store = MagicMock()
        store.get = AsyncMock(return_value=None)
        store.set = AsyncMock(side_effect=OSError("disk full"))
        machine = SelectionStateMachine(client, feed, store, history)

        await machine.select_branch(1)
        state = await machine.select_sensor(10)

        assert state == BranchAndSensor("1", "10")
        assert feed_transport.paths == ["/status/camaras/10/live"]

    async def test_restore_before_sign_in_is_resumed(self, client, feed, history, feed_transport, sensors_by_branch):
        """Test that a restore rejected for lack of a session completes on resume."""
        store = MemorySelectionStore({BRANCH_KEY: "1", SENSOR_KEY: "11"})
        machine = SelectionStateMachine(client, feed, store, history)
        client.list_sensors.side_effect = AuthError()

        with pytest.raises(AuthError):
            await machine.initialize()

        assert machine.restore_pending is True
        assert feed_transport.opened == []

        client.list_sensors.side_effect = lambda branch_id: sensors_by_branch[str(branch_id)]
        state = await machine.resume()

        assert state == BranchAndSensor("1", "11")
        assert machine.restore_pending is False
        assert feed_transport.paths == ["/status/camaras/11/live"]

    async def test_resume_after_explicit_selection_is_noop(self, client, feed, history):
        """Test that an explicit branch choice cancels the pending restore."""
        store = MemorySelectionStore({BRANCH_KEY: "1", SENSOR_KEY: "11"})
        machine = SelectionStateMachine(client, feed, store, history)
        client.list_sensors.side_effect = AuthError()
        with pytest.raises(AuthError):
            await machine.initialize()

        client.list_sensors.side_effect = None
        client.list_sensors.return_value = []
        await machine.select_branch(2)
        state = await machine.resume()

        assert state == BranchOnly("2")
        assert client.list_sensors.await_count == 2
