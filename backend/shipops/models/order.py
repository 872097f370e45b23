"""
Order Model

The customer order a shipment fulfils. Only the fields the shipping
workflow reads or writes live here; pricing and line items belong to the
order-management system.
"""
import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.orm import relationship

from shipops.core.clock import utcnow
from shipops.db.base import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class FulfillmentStatus(str, enum.Enum):
    UNFULFILLED = "UNFULFILLED"
    FULFILLED = "FULFILLED"
    PARTIALLY_FULFILLED = "PARTIALLY_FULFILLED"
    CANCELLED = "CANCELLED"


# Orders in these states (and fully paid) may be handed to a carrier
FULFILLABLE_ORDER_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value)


class Order(Base):
    """Customer order"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)  # ORD-2025-0042

    customer_name = Column(String(200), nullable=True)
    customer_email = Column(String(255), nullable=True)

    # Lifecycle: PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED → COMPLETED
    # Can also be: CANCELLED
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    fulfillment_status = Column(
        String(30), nullable=False, default=FulfillmentStatus.UNFULFILLED.value
    )

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")

    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    shipments = relationship(
        "Shipment",
        back_populates="order",
        order_by="desc(Shipment.created_at)",
    )

    def __repr__(self):
        return f"<Order {self.order_number} ({self.status})>"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED.value

    @property
    def can_fulfill(self) -> bool:
        """Confirmed or in processing, and fully paid"""
        return self.status in FULFILLABLE_ORDER_STATUSES and self.is_paid
