# storefront/repos/order_repo.py
from typing import List, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def add_item(self, item: OrderItemModel) -> OrderItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_item(self, item: OrderItemModel) -> None:
        self.db.delete(item)
        self.db.flush()

    def get_order(self, order_id: int) -> OrderModel | None:
        # unscoped, admin paths only
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def get_user_order(self, order_id: int, user_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id, OrderModel.user_id == user_id)
        ).scalar_one_or_none()

    def get_item(self, order_id: int, product_id: int) -> OrderItemModel | None:
        return self.db.execute(
            select(OrderItemModel).where(
                OrderItemModel.order_id == order_id,
                OrderItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def list_orders(
        self,
        user_id: int | None = None,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[OrderModel], int]:
        conditions = []
        if user_id is not None:
            conditions.append(OrderModel.user_id == user_id)
        if status is not None:
            conditions.append(OrderModel.status == status)

        total = self.db.execute(
            select(func.count(OrderModel.id)).where(*conditions)
        ).scalar_one()

        orders = self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(*conditions)
            .order_by(OrderModel.id)
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return list(orders), total

    def delete_order(self, order: OrderModel) -> None:
        self.db.delete(order)
        self.db.flush()
