# storefront/services/product_service.py
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models.product import ProductModel
from storefront.domain.enums import Currency
from storefront.domain.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    PriceNotFoundError,
)
from storefront.domain.schemas import ProductCreate, ProductUpdate
from storefront.repos.product_repo import ProductRepo
from storefront.services.currency_service import CurrencyService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

HUNDRED = Decimal(100)


def to_major(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / HUNDRED).quantize(Decimal("0.01"))


def to_minor(amount_major: Decimal) -> int:
    return int((Decimal(amount_major) * HUNDRED).to_integral_value())


class ProductService:
    """
    Catalog CRUD. Every product carries one price row per supported
    currency, all amounts in minor units.
    """

    def __init__(self, db: Session, currency_service: CurrencyService):
        self.db = db
        self.repo = ProductRepo(db)
        self.currency_service = currency_service

    def _serialize(self, product: ProductModel) -> Dict[str, Any]:
        return {
            "id": product.id,
            "name": product.name,
            "description": product.description,
            "category": product.category,
            "rates": {p.currency: p.amount for p in self.repo.get_prices(product.id)},
            "created_at": product.created_at,
            "updated_at": product.updated_at,
        }

    def _derive_prices(self, amount: int, currency: str) -> Dict[str, int]:
        """Base price plus a converted price for every other supported currency."""
        rates = {currency: amount}
        for other in Currency:
            if other.value == currency:
                continue
            result = self.currency_service.convert_currency(to_major(amount), currency, other.value)
            # a price row must stay positive even when the conversion rounds to zero
            rates[other.value] = max(1, to_minor(result.converted_amount))
        return rates

    def _get_or_404(self, product_id: int) -> ProductModel:
        product = self.repo.get_product(product_id)
        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")
        return product

    #queries

    def get_products(self) -> List[Dict[str, Any]]:
        return [self._serialize(p) for p in self.repo.list_products()]

    def get_product_by_id(self, product_id: int) -> Dict[str, Any]:
        return self._serialize(self._get_or_404(product_id))

    def get_product_price(self, product_id: int, currency: str) -> int:
        """
        Exact (product, currency) price in minor units. A missing row is a
        hard failure: prices are never derived on the fly for an order.
        """
        price = self.repo.get_price(product_id, currency)
        if not price:
            raise PriceNotFoundError(product_id, currency)
        return price.amount

    #commands

    def create_product(self, payload: ProductCreate) -> Dict[str, Any]:
        currency = payload.currency.value
        # conversion runs before any write so no transaction waits on the rate source
        rates = self._derive_prices(payload.amount, currency)

        if self.repo.get_product_by_name(payload.name):
            raise ConflictError(f'A product with the name "{payload.name}" already exists.')

        try:
            with transaction(self.db):
                product = self.repo.add_product(
                    ProductModel(
                        name=payload.name,
                        description=payload.description,
                        category=payload.category.value,
                    )
                )
                for code, amount in rates.items():
                    self.repo.upsert_price(product.id, code, amount)
        except IntegrityError:
            raise ConflictError(f'A product with the name "{payload.name}" already exists.') from None
        except SQLAlchemyError as e:
            logger.exception("Failed to create product")
            raise InternalError("Failed to create product") from e

        logger.info(f"Created product {product.id} with prices {rates}")
        return self._serialize(product)

    def update_product(self, product_id: int, payload: ProductUpdate) -> Dict[str, Any]:
        product = self._get_or_404(product_id)
        data = payload.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        amount = data.pop("amount", None)
        currency = data.pop("currency", None)

        if "name" in data and data["name"] != product.name and self.repo.get_product_by_name(data["name"]):
            raise ConflictError(f'A product with the name "{data["name"]}" already exists.')

        try:
            with transaction(self.db):
                for field, value in data.items():
                    setattr(product, field, value)
                if amount is not None:
                    # only this currency's row changes, derived rows wait for reprice_product
                    self.repo.upsert_price(product.id, currency, amount)
                self.db.flush()
        except IntegrityError:
            raise ConflictError("Product update violates a unique constraint") from None
        except SQLAlchemyError as e:
            logger.exception(f"Failed to update product {product_id}")
            raise InternalError("Failed to update product") from e

        logger.info(f"Updated product {product_id}: fields={sorted(data)} price_changed={amount is not None}")
        return self._serialize(product)

    def reprice_product(self, product_id: int, base_currency) -> Dict[str, Any]:
        """Re-derives every other currency from the price in base_currency."""
        base_currency = getattr(base_currency, "value", base_currency)
        product = self._get_or_404(product_id)
        base_amount = self.get_product_price(product_id, base_currency)
        rates = self._derive_prices(base_amount, base_currency)

        with transaction(self.db):
            for code, amount in rates.items():
                self.repo.upsert_price(product.id, code, amount)

        logger.info(f"Repriced product {product_id} from {base_currency}: {rates}")
        return self._serialize(product)

    def delete_product(self, product_id: int) -> Dict[str, bool]:
        product = self._get_or_404(product_id)

        if self.repo.count_order_references(product_id):
            raise ConflictError(f"Product {product_id} is referenced by existing orders")

        try:
            with transaction(self.db):
                self.repo.delete_prices(product_id)
                self.db.expire(product, ["prices"])
                self.repo.delete_product(product)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to delete product {product_id}")
            raise InternalError("Failed to delete product") from e

        logger.info(f"Deleted product {product_id}")
        return {"success": True}
