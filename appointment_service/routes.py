from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .booking import create_reservation
from .db import get_db
from .errors import NotFoundError, UnauthorizedError
from .lifecycle import (
    authorize_store,
    change_status,
    get_reservation,
    list_customer_reservations,
    list_store_reservations,
    purge_store_reservations,
)
from .reminder_worker import sweeper
from .schemas import (
    CreateReservationRequest,
    PurgeResponse,
    ReservationResponse,
    StatusLiteral,
    UpdateStatusRequest,
)
from .security import get_current_user, require_admin

router = APIRouter()


@router.post("/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation_endpoint(data: CreateReservationRequest, db: AsyncSession = Depends(get_db)):
    return await create_reservation(
        db,
        store_id=data.store_id,
        service_id=data.service_id,
        start=data.start,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        customer_email=data.customer_email,
        notes=data.notes,
    )


@router.get("/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def list_reservations_endpoint(
    store: str = Query(...),
    day: Optional[date] = Query(None, alias="date"),
    status: Optional[StatusLiteral] = Query(None),
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
):
    return await list_store_reservations(db, user, store, day=day, status=status)


@router.get("/reservations/mine", response_model=List[ReservationResponse], tags=["Reservations"])
async def my_reservations_endpoint(
    store: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
):
    email = user.get("email")
    if not email:
        raise UnauthorizedError("Token carries no customer email")
    return await list_customer_reservations(db, email, store_id=store)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation_endpoint(
    reservation_id: str,
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
):
    reservation = await get_reservation(db, reservation_id)
    if reservation is None:
        raise NotFoundError("Reservation not found")
    authorize_store(user, reservation.store_id)
    return reservation


@router.put("/reservations/{reservation_id}/status", response_model=ReservationResponse, tags=["Reservations"])
async def update_status_endpoint(
    reservation_id: str,
    data: UpdateStatusRequest,
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
):
    return await change_status(db, user, reservation_id, data.status)


@router.delete("/stores/{store_id}/reservations", response_model=PurgeResponse, tags=["Stores"])
async def purge_store_endpoint(
    store_id: str,
    db: AsyncSession = Depends(get_db),
    user=Depends(get_current_user),
):
    authorize_store(user, store_id)
    deleted = await purge_store_reservations(db, store_id)
    return PurgeResponse(store_id=store_id, deleted=deleted)


@router.post("/system/reminders/sweep", tags=["System"])
async def sweep_reminders_endpoint(user=Depends(require_admin)):
    report = await sweeper.run_once()
    if report is None:
        return {"status": "skipped", "reason": "sweep already running"}
    return {"status": "done", **report.__dict__}
