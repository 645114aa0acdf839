import asyncio
import json
import logging

import aio_pika

from .db import SessionLocal
from .errors import TransientStorageError
from .lifecycle import purge_store_reservations
from .rabbitmq import connect, EXCHANGE_NAME

logger = logging.getLogger(__name__)

QUEUE_NAME = "appointment_service_store_events"
ROUTING_KEYS = ["store.deleted"]
RETRY_SECONDS = 5


async def handle_message(message: aio_pika.IncomingMessage):
    # only a transient purge failure is requeued; anything else is dropped so
    # a malformed event cannot be redelivered forever
    async with message.process(requeue=False, ignore_processed=True):
        try:
            payload = json.loads(message.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("dropping undecodable message %s", message.message_id)
            return

        if not isinstance(payload, dict):
            logger.warning("dropping message %s: payload is not an object", message.message_id)
            return

        event_type = payload.get("event_type")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            logger.warning("dropping %s message %s: data is not an object", event_type, message.message_id)
            return

        store_id = data.get("store_id")
        if event_type not in set(ROUTING_KEYS) or not store_id:
            return

        async with SessionLocal() as db:
            try:
                await purge_store_reservations(db, str(store_id))
            except TransientStorageError:
                logger.error("purge for deleted store %s failed, requeueing", store_id)
                await message.reject(requeue=True)


async def _connect_and_consume():
    conn = await connect()
    if conn is None:
        raise RuntimeError("RABBIT_URL not set; cannot start consumer")

    channel = await conn.channel()
    await channel.set_qos(prefetch_count=10)

    exchange = await channel.declare_exchange(
        EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
    )

    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    for rk in ROUTING_KEYS:
        await queue.bind(exchange, routing_key=rk)

    await queue.consume(handle_message)
    logger.info("store events consumer started")
    return conn


async def start_consumer_with_retry(stop_event: asyncio.Event):
    while not stop_event.is_set():
        try:
            return await _connect_and_consume()
        except Exception as e:
            logger.warning("consumer connect failed, retrying in %ss: %s", RETRY_SECONDS, e)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
            except asyncio.TimeoutError:
                continue

    return None
