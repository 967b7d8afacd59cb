"""
Headless realtime monitor entry point.
Restores the persisted selection and logs every live reading until a
shutdown signal arrives.
"""
import asyncio
import signal
import sys

from coldtrack.core.config import settings
from coldtrack.core.errors import AuthError, TransportError
from coldtrack.core.logging import configure_logging, get_logger
from coldtrack.core.session import SessionContext, login
from coldtrack.realtime.feed import LiveFeedClient, MqttFeedTransport
from coldtrack.realtime.selection import BranchAndSensor, SelectionStateMachine
from coldtrack.realtime.store import build_selection_store
from coldtrack.schemas import LiveReading
from coldtrack.services.backend_client import BackendClient


# Configure logging
configure_logging()
logger = get_logger(__name__)


def handle_shutdown(signum, frame):
    """Handle shutdown signals (SIGTERM, SIGINT)."""
    logger.info(
        "monitor.shutdown_signal_received",
        signal=signum
    )
    sys.exit(0)


async def run() -> None:
    session = SessionContext()
    client = BackendClient(session)
    store = await build_selection_store()
    machine = SelectionStateMachine(client, LiveFeedClient(MqttFeedTransport()), store)

    def log_reading(reading: LiveReading) -> None:
        logger.info(
            "monitor.reading",
            branch_id=machine.branch_id,
            sensor_id=machine.sensor_id,
            temperature=reading.temperature,
            state=reading.state,
            ts=reading.timestamp_seconds,
        )

    machine.add_listener(log_reading)

    try:
        if settings.identity_token:
            user = await login(session, client, settings.identity_token)
            logger.info("monitor.signed_in", user_id=user.id)

        state = await machine.initialize()
        if not isinstance(state, BranchAndSensor):
            logger.warning("monitor.no_sensor_selected", state=state.name, branch_id=machine.branch_id)
            return

        logger.info("monitor.watching", branch_id=state.branch_id, sensor_id=state.sensor_id)
        await asyncio.Event().wait()

    finally:
        machine.close()
        await client.close()
        close_store = getattr(store, "close", None)
        if close_store is not None:
            await close_store()


def main() -> None:
    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    logger.info("monitor.starting")

    try:
        asyncio.run(run())
    except SystemExit:
        logger.info("monitor.shutdown_complete")
    except (AuthError, TransportError) as e:
        logger.error("monitor.backend_error", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(
            "monitor.fatal_error",
            error=str(e),
            exc_info=True
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
