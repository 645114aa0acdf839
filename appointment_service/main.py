import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL, REMINDERS_ENABLED, RABBIT_URL
from .consumer import start_consumer_with_retry
from .errors import SchedulingError
from .middleware import RequestLoggingMiddleware
from .rabbitmq import publisher
from .reminder_worker import sweeper
from .routes import router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Reservations", "description": "Public booking and store calendar management."},
    {"name": "Stores", "description": "Store-level bulk operations used by store deletion."},
    {"name": "System", "description": "Operational endpoints (health, reminder sweep)."},
]

app = FastAPI(title="Appointment Service", openapi_tags=OPENAPI_TAGS)
app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)

_consumer_conn = None
_stop_event = asyncio.Event()
_consumer_task = None


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.get("/health", tags=["System"])
async def health():
    return {
        "status": "ok",
        "service": "appointment-service",
        "events_enabled": publisher.enabled,
        "reminders_running": sweeper.running,
    }


async def _start_consumer():
    global _consumer_conn
    _consumer_conn = await start_consumer_with_retry(_stop_event)


@app.on_event("startup")
async def startup():
    global _consumer_task
    _stop_event.clear()
    try:
        await publisher.connect()
    except Exception as e:
        logger.warning("RabbitMQ connect failed at startup; continuing: %s", e)

    # store events consumer (don't crash service)
    if RABBIT_URL:
        _consumer_task = asyncio.create_task(_start_consumer())

    if REMINDERS_ENABLED:
        sweeper.start()


@app.on_event("shutdown")
async def shutdown():
    global _consumer_conn, _consumer_task
    _stop_event.set()
    await sweeper.stop()
    if _consumer_task:
        try:
            await _consumer_task
        except Exception as e:
            logger.warning("consumer task ended with error: %s", e)
        _consumer_task = None
    try:
        if _consumer_conn and not _consumer_conn.is_closed:
            await _consumer_conn.close()
    except Exception as e:
        logger.warning("closing consumer connection failed: %s", e)
    await publisher.close()
