"""
Seed Example Data for ShipOps

This script:
1. Creates any missing tables
2. Seeds a handful of orders in different lifecycle states so the shipment
   endpoints have something to fulfil

Run with: python backend/scripts/seed_example_data.py
"""
import sys
from decimal import Decimal
from pathlib import Path

# Add backend/ to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session

from shipops.db.session import SessionLocal, init_db
from shipops.models.order import Order, OrderStatus, PaymentStatus


EXAMPLE_ORDERS = [
    # Ready to ship
    {"order_number": "ORD-2025-0042", "status": OrderStatus.CONFIRMED, "payment_status": PaymentStatus.COMPLETED,
     "customer_name": "Asha Rao", "customer_email": "asha@example.com", "total_amount": Decimal("2499.00")},
    {"order_number": "ORD-2025-0043", "status": OrderStatus.PROCESSING, "payment_status": PaymentStatus.COMPLETED,
     "customer_name": "Vikram Shah", "customer_email": "vikram@example.com", "total_amount": Decimal("899.00")},
    # Not fulfillable yet
    {"order_number": "ORD-2025-0044", "status": OrderStatus.CONFIRMED, "payment_status": PaymentStatus.PENDING,
     "customer_name": "Meera Iyer", "customer_email": "meera@example.com", "total_amount": Decimal("1299.00")},
    {"order_number": "ORD-2025-0045", "status": OrderStatus.PENDING, "payment_status": PaymentStatus.PENDING,
     "customer_name": "Rahul Nair", "customer_email": "rahul@example.com", "total_amount": Decimal("349.00")},
]


def get_or_create_order(db: Session, order_number: str, **fields) -> Order:
    """Get existing order or create it"""
    order = db.query(Order).filter(Order.order_number == order_number).first()
    if order:
        return order

    order = Order(
        order_number=order_number,
        status=fields["status"].value,
        payment_status=fields["payment_status"].value,
        customer_name=fields.get("customer_name"),
        customer_email=fields.get("customer_email"),
        total_amount=fields.get("total_amount", Decimal("0")),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def main():
    print("Creating tables...")
    init_db()

    db = SessionLocal()
    try:
        for row in EXAMPLE_ORDERS:
            data = dict(row)
            order = get_or_create_order(db, data.pop("order_number"), **data)
            print(f"  {order.order_number} (id={order.id}) {order.status}/{order.payment_status}")
    finally:
        db.close()
    print("Done.")


if __name__ == "__main__":
    main()
