from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.held",
    "reservation.confirmed",
    "reservation.accepted",
    "reservation.rejected",
    "reservation.cancelled",
    "reservation.completed",
    "reservation.status_updated",
    "reservation.expired",
    "slot.status_updated",
    "slots.bulk_created",
]
AuditInitiator = Literal["user", "restaurant", "system"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    reservation_id: Optional[int] = None,
    slot_id: Optional[int] = None,
    restaurant_id: Optional[int] = None,
    user_id: Optional[int] = None,
    party_size: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    version: Optional[int] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit one JSON line per state change. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "reservation_id": reservation_id,
        "slot_id": slot_id,
        "restaurant_id": restaurant_id,
        "user_id": user_id,
        "party_size": party_size,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
        "version": version,
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc


def audit_transition(action: AuditAction, initiator: AuditInitiator, transition: Any, **kwargs: Any) -> None:
    """Shortcut for a lifecycle `Transition` (reservation + slot + previous status)."""
    reservation = transition.reservation
    emit_audit_log(
        action=action,
        initiator=initiator,
        reservation_id=reservation.id,
        slot_id=transition.slot.id,
        restaurant_id=reservation.restaurant_id,
        user_id=reservation.user_id,
        party_size=reservation.party_size,
        status_from=transition.status_from,
        status_to=reservation.status,
        version=reservation.version,
        **kwargs,
    )
