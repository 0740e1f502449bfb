from radioplan.core.database import Base
from radioplan.models.capacity_window import CapacityWindow
from radioplan.models.product import Product, Customer
from radioplan.models.order import Order, OrderStatus
from radioplan.models.batch import Batch, BatchStatus
from radioplan.models.delivery_slot import DeliverySlot
from radioplan.models.sequence import NumberSequence
from radioplan.models.reservation import (
    Reservation,
    ReservationEvent,
    ReservationStatus,
)

__all__ = [
    "Base",
    "Batch",
    "BatchStatus",
    "CapacityWindow",
    "Customer",
    "DeliverySlot",
    "NumberSequence",
    "Order",
    "OrderStatus",
    "Product",
    "Reservation",
    "ReservationEvent",
    "ReservationStatus",
]
