import logging

import aio_pika

from .config import RABBIT_URL
from .errors import NotificationUnavailableError

logger = logging.getLogger(__name__)

EXCHANGE_NAME = "domain_events"


async def connect():
    if not RABBIT_URL:
        return None
    return await aio_pika.connect_robust(RABBIT_URL)


def _message(body: str) -> aio_pika.Message:
    return aio_pika.Message(
        body=body.encode("utf-8"),
        content_type="application/json",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
    )


class RabbitPublisher:
    """
    Publishes domain events and notification requests on the topic exchange.

    `publish` is fire-and-forget: a broker outage is logged and swallowed, so
    bookings never fail because of it. `dispatch` waits for the broker ack
    (the channel runs with publisher confirms) and raises
    NotificationUnavailableError otherwise.
    """

    def __init__(self):
        self.enabled = bool(RABBIT_URL)
        self._reset()

    def _reset(self):
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._exchange: aio_pika.abc.AbstractExchange | None = None

    @property
    def _connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def connect(self):
        if not self.enabled or self._connected:
            return

        try:
            self._connection = await aio_pika.connect_robust(RABBIT_URL)
            self._channel = await self._connection.channel(publisher_confirms=True)
            self._exchange = await self._channel.declare_exchange(
                EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
            )
            logger.info("connected to exchange %s", EXCHANGE_NAME)
        except Exception as e:
            logger.error("RabbitMQ connect failed: %s", e)
            self._reset()
            raise

    async def _ensure_exchange(self) -> aio_pika.abc.AbstractExchange:
        await self.connect()
        if self._exchange is None:
            raise NotificationUnavailableError("exchange not declared")
        return self._exchange

    async def publish(self, routing_key: str, message_body: str):
        if not self.enabled:
            return

        try:
            exchange = await self._ensure_exchange()
            await exchange.publish(_message(message_body), routing_key=routing_key)
        except Exception as e:
            logger.error("RabbitMQ publish failed (%s): %s", routing_key, e)

    async def dispatch(self, routing_key: str, message_body: str):
        if not self.enabled:
            raise NotificationUnavailableError("RABBIT_URL not set; cannot dispatch")

        try:
            exchange = await self._ensure_exchange()
            await exchange.publish(_message(message_body), routing_key=routing_key)
        except NotificationUnavailableError:
            raise
        except Exception as e:
            raise NotificationUnavailableError(f"dispatch failed ({routing_key}): {e}") from e

    async def close(self):
        try:
            if self._connected:
                await self._connection.close()
        finally:
            self._reset()


publisher = RabbitPublisher()
