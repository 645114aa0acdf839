from __future__ import annotations

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

# Must be set before the service modules read their configuration.
_DB_PATH = Path(tempfile.mkdtemp(prefix="appointment-tests-")) / "appointments.db"
os.environ["APPOINTMENT_DB"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["BUSINESS_TIMEZONE"] = "America/Sao_Paulo"
os.environ["REMINDERS_ENABLED"] = "false"
os.environ.pop("RABBIT_URL", None)
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from appointment_service import db as db_module  # noqa: E402
from appointment_service import models  # noqa: E402,F401
from appointment_service.locks import store_locks, sweep_locks  # noqa: E402
from appointment_service.tests.support import FakeCatalog, run  # noqa: E402

# TestClient and asyncio.run drive different event loops; never share pooled connections.
test_engine = create_async_engine(os.environ["APPOINTMENT_DB"], poolclass=NullPool)
db_module.SessionLocal.configure(bind=test_engine)


async def _reset_schema() -> None:
    async with test_engine.begin() as conn:
        await conn.run_sync(db_module.Base.metadata.drop_all)
        await conn.run_sync(db_module.Base.metadata.create_all)


@pytest.fixture(autouse=True)
def database():
    run(_reset_schema())
    # asyncio locks bind to the loop that first waits on them
    store_locks._local.clear()
    sweep_locks._local.clear()
    yield


@pytest.fixture
def catalog():
    fake = FakeCatalog()
    with (
        patch("appointment_service.booking.fetch_store", new=fake.fetch_store),
        patch("appointment_service.booking.fetch_service", new=fake.fetch_service),
        patch("appointment_service.lifecycle.fetch_store", new=fake.fetch_store),
        patch("appointment_service.reminder_worker.fetch_store", new=fake.fetch_store),
    ):
        yield fake


@pytest.fixture
def client(catalog):
    from appointment_service.main import app

    with TestClient(app) as c:
        yield c
