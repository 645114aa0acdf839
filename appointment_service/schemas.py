from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

StatusLiteral = Literal["pending", "confirmed", "completed", "cancelled"]


# ---- Catalog (read-only, owned by catalog-service) ----

class StoreInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    address: str = ""
    phone: str = ""
    email: Optional[str] = None
    owner_id: Optional[str] = None
    plan: Optional[str] = None


class ServiceInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    store_id: Optional[str] = None
    name: str
    duration_minutes: int
    price: Decimal
    is_active: bool = True


# ---- Reservations ----

class CreateReservationRequest(BaseModel):
    store_id: str
    service_id: str
    start: datetime
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("store_id", "service_id", "customer_name", "customer_phone")
    @classmethod
    def _required_text(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("customer_email", "notes")
    @classmethod
    def _optional_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reservation_id: str
    store_id: str
    service_id: str
    service_name: str
    service_price: float
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    start: datetime
    end: datetime
    duration_minutes: int
    status: StatusLiteral
    notes: Optional[str] = None
    reminder_sent: bool
    created_at: datetime
    updated_at: datetime


class UpdateStatusRequest(BaseModel):
    status: StatusLiteral


class PurgeResponse(BaseModel):
    store_id: str
    deleted: int
