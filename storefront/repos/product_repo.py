# storefront/repos/product_repo.py
from typing import Iterable, List

from sqlalchemy import select, delete, func
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.data.models.price import PriceModel
from storefront.data.models.order_item import OrderItemModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def list_products(self) -> List[ProductModel]:
        return list(
            self.db.execute(select(ProductModel).order_by(ProductModel.id)).scalars().all()
        )

    def get_products_by_ids(self, product_ids: Iterable[int]) -> List[ProductModel]:
        ids = list(product_ids)
        if not ids:
            return []
        return list(
            self.db.execute(
                select(ProductModel).where(ProductModel.id.in_(ids))
            ).scalars().all()
        )

    def get_product_by_name(self, name: str) -> ProductModel | None:
        return self.db.execute(
            select(ProductModel).where(ProductModel.name == name)
        ).scalar_one_or_none()

    def add_product(self, product: ProductModel) -> ProductModel:
        self.db.add(product)
        self.db.flush()
        return product

    def delete_product(self, product: ProductModel) -> None:
        self.db.delete(product)
        self.db.flush()

    # prices

    def get_prices(self, product_id: int) -> List[PriceModel]:
        return list(
            self.db.execute(
                select(PriceModel).where(PriceModel.product_id == product_id)
            ).scalars().all()
        )

    def get_price(self, product_id: int, currency: str) -> PriceModel | None:
        return self.db.execute(
            select(PriceModel).where(
                PriceModel.product_id == product_id,
                PriceModel.currency == currency,
            )
        ).scalar_one_or_none()

    def upsert_price(self, product_id: int, currency: str, amount: int) -> PriceModel:
        price = self.get_price(product_id, currency)
        if price:
            price.amount = amount
        else:
            price = PriceModel(product_id=product_id, currency=currency, amount=amount)
            self.db.add(price)
        self.db.flush()
        return price

    def delete_prices(self, product_id: int) -> int:
        result = self.db.execute(
            delete(PriceModel).where(PriceModel.product_id == product_id)
        )
        return result.rowcount

    def count_order_references(self, product_id: int) -> int:
        return self.db.execute(
            select(func.count(OrderItemModel.id)).where(OrderItemModel.product_id == product_id)
        ).scalar_one()
