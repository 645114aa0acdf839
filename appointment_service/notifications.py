"""
Customer and store-owner notifications.

Messages are handed to the notification-service through the broker; this
service never talks to a mail server. Reminders use an acknowledged publish
because the sweeper only flags a reservation once the send is confirmed,
everything else is fire-and-forget.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from .config import BUSINESS_TIMEZONE
from .events import build_event, to_json
from .rabbitmq import publisher

EMAIL_ROUTING_KEY = "notification.email"
OWNER_ROUTING_KEY = "notification.owner"

STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


def format_local(dt: datetime, fmt: str = "%d/%m/%Y %H:%M") -> str:
    return dt.astimezone(ZoneInfo(BUSINESS_TIMEZONE)).strftime(fmt)


def reminder_email(reservation, store) -> dict:
    return {
        "to": reservation.customer_email,
        "template": "appointment_reminder",
        "subject": f"Reminder: your appointment at {store.name}",
        "context": {
            "reservation_id": reservation.reservation_id,
            "customer_name": reservation.customer_name,
            "store_name": store.name,
            "service_name": reservation.service_name,
            "start_local": format_local(reservation.start),
            "store_address": store.address,
            "store_phone": store.phone,
        },
    }


def confirmation_email(reservation, store) -> dict:
    return {
        "to": reservation.customer_email,
        "template": "appointment_confirmation",
        "subject": f"Appointment confirmed - {store.name}",
        "context": {
            "reservation_id": reservation.reservation_id,
            "customer_name": reservation.customer_name,
            "store_name": store.name,
            "service_name": reservation.service_name,
            "service_price": str(reservation.service_price),
            "start_local": format_local(reservation.start, "%A, %d/%m/%Y %H:%M"),
            "store_address": store.address,
            "store_phone": store.phone,
        },
    }


async def send_reminder(reservation, store) -> None:
    event = build_event(EMAIL_ROUTING_KEY, reminder_email(reservation, store))
    await publisher.dispatch(EMAIL_ROUTING_KEY, to_json(event))


async def send_confirmation(reservation, store) -> None:
    if not reservation.customer_email:
        return
    event = build_event(EMAIL_ROUTING_KEY, confirmation_email(reservation, store))
    await publisher.publish(EMAIL_ROUTING_KEY, to_json(event))


async def notify_owner(store, title: str, message: str) -> None:
    if not store or not store.owner_id:
        return
    event = build_event(
        OWNER_ROUTING_KEY,
        {
            "user_id": store.owner_id,
            "store_id": store.id,
            "type": "appointment",
            "title": title,
            "message": message,
            "link": "/app/appointments",
        },
    )
    await publisher.publish(OWNER_ROUTING_KEY, to_json(event))


async def notify_new_booking(reservation, store) -> None:
    await notify_owner(
        store,
        "New appointment",
        f"{reservation.customer_name} booked {reservation.service_name} for {format_local(reservation.start)}",
    )


async def notify_status_change(reservation, store) -> None:
    label = STATUS_LABELS.get(reservation.status, reservation.status)
    await notify_owner(
        store,
        "Appointment status updated",
        f"The appointment of {reservation.customer_name} is now: {label}",
    )
