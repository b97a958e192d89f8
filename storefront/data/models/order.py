from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, Text, DateTime, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # minor units, in total_amount_currency
    total_amount = Column(Integer, nullable=False, default=0)
    total_amount_currency = Column(String(3), nullable=False)
    # total in the reference currency (inr) and the rate used to get from it to the order currency
    reference_amount = Column(Integer, nullable=False, default=0)
    exchange_rate = Column(Numeric(18, 8), nullable=False, default=1)

    status = Column(String(20), nullable=False, default="processing", index=True)  # processing, delivered, cancelled
    payment_method = Column(String(20), nullable=False)  # razorpay, polar

    shipping_address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False)
    billing_address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
