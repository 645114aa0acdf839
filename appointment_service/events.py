import json
import uuid
from datetime import datetime, timezone


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


def reservation_data(reservation) -> dict:
    return {
        "reservation_id": reservation.reservation_id,
        "store_id": reservation.store_id,
        "service_id": reservation.service_id,
        "service_name": reservation.service_name,
        "start": reservation.start.isoformat(),
        "end": reservation.end.isoformat(),
        "status": reservation.status,
        "customer_name": reservation.customer_name,
    }
