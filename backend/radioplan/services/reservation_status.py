import enum
from typing import Optional

from radioplan.models import ReservationStatus


class ReservationAction(str, enum.Enum):
    CREATE = "CREATE"
    CONFIRM = "CONFIRM"
    CANCEL = "CANCEL"
    EXPIRE = "EXPIRE"
    CONVERT = "CONVERT"


ALLOWED_TRANSITIONS: dict[ReservationStatus, dict[ReservationAction, ReservationStatus]] = {
    ReservationStatus.TENTATIVE: {
        ReservationAction.CONFIRM: ReservationStatus.CONFIRMED,
        ReservationAction.CANCEL: ReservationStatus.CANCELLED,
        ReservationAction.EXPIRE: ReservationStatus.EXPIRED,
    },
    ReservationStatus.CONFIRMED: {
        ReservationAction.CANCEL: ReservationStatus.CANCELLED,
        ReservationAction.CONVERT: ReservationStatus.CONVERTED,
    },
    ReservationStatus.CONVERTED: {},
    ReservationStatus.CANCELLED: {},
    ReservationStatus.EXPIRED: {},
}

# Резервы в этих статусах держат estimated_minutes в reserved_minutes своего окна
HOLDING_STATUSES = (ReservationStatus.TENTATIVE, ReservationStatus.CONFIRMED)


def next_status(current: ReservationStatus, action: ReservationAction) -> Optional[ReservationStatus]:
    return ALLOWED_TRANSITIONS.get(current, {}).get(action)


def can_transition(current: ReservationStatus, action: ReservationAction) -> bool:
    return next_status(current, action) is not None
