"""
Live feed client.
Holds the single subscription to one sensor's live path and turns raw
snapshots into LiveReading objects.
"""
import asyncio
from typing import Any, Callable, Optional, Protocol

import aiomqtt

from coldtrack.api.v1.metrics import feed_subscriptions_total, live_readings_total
from coldtrack.core.config import settings
from coldtrack.core.logging import get_logger
from coldtrack.schemas import LiveReading, parse_live_payload


logger = get_logger(__name__)

RawCallback = Callable[[Any], None]
ReadingCallback = Callable[[LiveReading], None]


class FeedHandle(Protocol):
    def cancel(self) -> None: ...


class FeedTransport(Protocol):
    """Push-based key/value store delivering full snapshots of one path."""

    def open(self, path: str, on_value: RawCallback) -> FeedHandle: ...


class MqttFeedHandle:
    """Cancels the background task that reads one MQTT subscription."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class MqttFeedTransport:
    """
    Live feed over MQTT.

    Each sensor path is a topic whose retained message is the current
    snapshot, so a fresh subscription receives the current value first and
    every later publish after it.
    """

    def __init__(
        self,
        hostname: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.hostname = hostname or settings.mqtt_broker_host
        self.port = port or settings.mqtt_broker_port
        self.username = username if username is not None else settings.mqtt_username
        self.password = password if password is not None else settings.mqtt_password

    def open(self, path: str, on_value: RawCallback) -> MqttFeedHandle:
        task = asyncio.get_running_loop().create_task(self._listen(path, on_value))
        return MqttFeedHandle(task)

    async def _listen(self, topic: str, on_value: RawCallback) -> None:
        """
        Read the topic until cancelled, reconnecting with exponential backoff.

        Cancellation is the only way out of this loop.
        """
        retry_delay = 1

        while True:
            try:
                async with aiomqtt.Client(
                    hostname=self.hostname,
                    port=self.port,
                    username=self.username or None,
                    password=self.password or None,
                ) as client:
                    retry_delay = 1
                    await client.subscribe(topic, qos=1)
                    logger.info("mqtt.subscribed", host=self.hostname, topic=topic)

                    async for message in client.messages:
                        on_value(message.payload)

            except aiomqtt.MqttError as e:
                logger.error("mqtt.disconnected", topic=topic, error=str(e), retry_in=retry_delay)
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, 60)

            except Exception as e:
                logger.error(
                    "mqtt.unexpected_error",
                    topic=topic,
                    error=str(e),
                    exc_info=True,
                    retry_in=retry_delay,
                )
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, 60)


class LiveSubscription:
    """Cancelable handle for one sensor's live feed."""

    def __init__(self, feed_path: str, path: str):
        self.feed_path = feed_path
        self.path = path
        self._active = True
        self._handle: Optional[FeedHandle] = None

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivery. Synchronous and safe to call more than once."""
        if not self._active:
            return
        self._active = False
        if self._handle is not None:
            self._handle.cancel()
        logger.info("feed.unsubscribed", feed_path=self.feed_path)


class LiveFeedClient:
    """
    Owns at most one live subscription.

    Opening a new subscription cancels the previous one first, and values
    that arrive for a cancelled subscription are never delivered.
    """

    def __init__(self, transport: FeedTransport, path_template: Optional[str] = None):
        self.transport = transport
        self.path_template = path_template or settings.feed_path_template
        self._current: Optional[LiveSubscription] = None

    @property
    def current(self) -> Optional[LiveSubscription]:
        return self._current

    def subscribe(self, feed_path: str, on_reading: ReadingCallback) -> LiveSubscription:
        self.cancel()

        subscription = LiveSubscription(feed_path, self.path_template.format(feed_path=feed_path))

        def deliver(raw: Any) -> None:
            if not subscription.active:
                return

            reading = parse_live_payload(raw)
            if reading is None:
                live_readings_total.labels(outcome="dropped").inc()
                logger.debug("feed.malformed_payload_dropped", feed_path=feed_path)
                return

            live_readings_total.labels(outcome="accepted").inc()
            try:
                on_reading(reading)
            except Exception as e:
                # A faulty consumer must not tear down the transport loop
                logger.error(
                    "feed.consumer_error",
                    feed_path=feed_path,
                    error=str(e),
                    exc_info=True,
                )

        subscription._handle = self.transport.open(subscription.path, deliver)
        self._current = subscription
        feed_subscriptions_total.inc()

        logger.info("feed.subscribed", feed_path=feed_path, path=subscription.path)
        return subscription

    def cancel(self) -> None:
        if self._current is not None:
            self._current.cancel()
            self._current = None
