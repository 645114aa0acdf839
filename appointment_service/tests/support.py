from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from jose import jwt

from appointment_service.schemas import ServiceInfo, StoreInfo

STORE_ID = "store-1"
OTHER_STORE_ID = "store-2"
HAIRCUT_ID = "svc-haircut"
MASSAGE_ID = "svc-massage"


class FakeCatalog:
    def __init__(self) -> None:
        self.stores: dict[str, StoreInfo] = {
            STORE_ID: StoreInfo(
                id=STORE_ID,
                name="Studio Bella",
                address="Rua das Flores, 10",
                phone="+55 11 99999-0000",
                owner_id="owner-1",
                plan="pro",
            ),
            OTHER_STORE_ID: StoreInfo(
                id=OTHER_STORE_ID,
                name="Clinica Vida",
                address="Av. Central, 200",
                phone="+55 11 98888-0000",
                owner_id="owner-2",
                plan="pro",
            ),
        }
        self.services: dict[str, ServiceInfo] = {
            HAIRCUT_ID: ServiceInfo(
                id=HAIRCUT_ID, store_id=STORE_ID, name="Haircut", duration_minutes=60, price=Decimal("80")
            ),
            MASSAGE_ID: ServiceInfo(
                id=MASSAGE_ID, store_id=OTHER_STORE_ID, name="Massage", duration_minutes=90, price=Decimal("150")
            ),
        }

    async def fetch_store(self, store_id: str) -> StoreInfo | None:
        return self.stores.get(store_id)

    async def fetch_service(self, service_id: str) -> ServiceInfo | None:
        return self.services.get(service_id)


def run(coro):
    return asyncio.run(coro)


def make_token(**claims) -> str:
    return jwt.encode(claims, os.environ["JWT_SECRET"], algorithm="HS256")


def auth(**claims) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(**claims)}"}


def owner_headers(store_id: str = STORE_ID) -> dict[str, str]:
    return auth(sub=f"owner-of-{store_id}", roles=["store_owner"], store_id=store_id)


def admin_headers() -> dict[str, str]:
    return auth(sub="root", roles=["admin"])


def booking_body(start: str, **overrides) -> dict:
    body = {
        "store_id": STORE_ID,
        "service_id": HAIRCUT_ID,
        "start": start,
        "customer_name": "Ana Souza",
        "customer_phone": "+55 11 91234-5678",
        "customer_email": "ana@example.com",
    }
    body.update(overrides)
    return body


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def hours_from_now(hours: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)
