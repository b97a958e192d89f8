# storefront/services/order_service.py
from contextlib import nullcontext
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models.address import AddressModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.enums import (
    AddressType,
    OrderStatus,
    PaymentMethod,
    REFERENCE_CURRENCY,
    TERMINAL_ORDER_STATUSES,
)
from storefront.domain.errors import (
    AppError,
    InternalError,
    InvalidProductError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from storefront.domain.schemas import AddressIn, AddressOut, OrderCreate, OrderUpdate
from storefront.repos.address_repo import AddressRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.currency_service import CurrencyService
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.product_service import ProductService, to_major
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAYMENT_METHODS = {m.value for m in PaymentMethod}
TERMINAL = {s.value for s in TERMINAL_ORDER_STATUSES}


class OrderService:
    """
    Order domain: creation with multi-currency pricing, queries, and
    status-gated mutations.

    Every write runs inside one transaction. A failure at any step rolls
    back the whole order together with its line items and addresses.
    """

    def __init__(
        self,
        db: Session,
        currency_service: CurrencyService,
        lock_service: LockService | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.products = ProductRepo(db)
        self.addresses = AddressRepo(db)
        self.users = UserRepo(db)
        self.currency_service = currency_service
        self.product_service = ProductService(db, currency_service)
        self.lock_service = lock_service
        self.notifier = notifier

    # =====================================================
    # helpers
    # =====================================================

    @staticmethod
    def validate_order_input(data: OrderCreate, user_id: int | None) -> None:
        if not user_id:
            raise ValidationError("User ID is required")

        if not data.payment_method:
            raise ValidationError("Payment method is required")

        if data.payment_method not in PAYMENT_METHODS:
            raise ValidationError("Payment method must be 'razorpay' or 'polar'")

        if data.shipping_address is None:
            raise ValidationError("Shipping address is required")

        if not data.products:
            raise ValidationError("At least one product is required")

        for item in data.products:
            if not item.product_id or item.product_id <= 0:
                raise ValidationError("Valid product ID is required")
            if not item.quantity or item.quantity <= 0:
                raise ValidationError("Product quantity must be greater than 0")

    @staticmethod
    def _merge_lines(data: OrderCreate) -> Dict[int, int]:
        # same product twice in one request becomes one line item
        lines: Dict[int, int] = {}
        for item in data.products:
            lines[item.product_id] = lines.get(item.product_id, 0) + item.quantity
        return lines

    def _create_address(self, user_id: int, address_type: AddressType, address: AddressIn) -> AddressModel:
        if address.is_default:
            self.addresses.clear_default(user_id, address_type.value)
        return self.addresses.create_address(
            AddressModel(
                user_id=user_id,
                address_type=address_type.value,
                **address.model_dump(),
            )
        )

    def _lock(self, order_id: int):
        if self.lock_service is None:
            return nullcontext()
        return self.lock_service.order_lock(order_id)

    @staticmethod
    def _require_user(user_id: int | None) -> int:
        if not user_id or user_id <= 0:
            raise ValidationError("User ID is required")
        return user_id

    def _get_mutable_order(self, order_id: int, user_id: int) -> OrderModel:
        order = self.repo.get_user_order(order_id, user_id)
        if not order:
            raise NotFoundError(f"Order with ID {order_id} not found")
        if order.status in TERMINAL:
            raise StateConflictError(f"Cannot modify order {order_id} with status '{order.status}'")
        return order

    def _recompute_totals(self, order: OrderModel) -> None:
        self.db.flush()
        self.db.expire(order, ["items"])
        order.total_amount = sum(i.price_at_order * i.quantity for i in order.items)

        rate = Decimal(order.exchange_rate)
        if rate == 1:
            order.reference_amount = order.total_amount
        else:
            # snapshots exist only in the order currency, so the reference total follows the rate used at creation
            order.reference_amount = int(
                (Decimal(order.total_amount) / rate).to_integral_value(rounding=ROUND_HALF_UP)
            )

    def _serialize(self, order: OrderModel) -> Dict[str, Any]:
        shipping = self.addresses.get_address(order.shipping_address_id)
        billing = self.addresses.get_address(order.billing_address_id)

        return {
            "id": order.id,
            "user_id": order.user_id,
            "total_amount": order.total_amount,
            "total_amount_currency": order.total_amount_currency,
            "status": order.status,
            "payment_method": order.payment_method,
            "shipping_address_id": order.shipping_address_id,
            "billing_address_id": order.billing_address_id,
            "notes": order.notes,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
            "shipping_address": AddressOut.model_validate(shipping) if shipping else None,
            "billing_address": AddressOut.model_validate(billing) if billing else None,
            "items": [
                {
                    "id": i.id,
                    "order_id": i.order_id,
                    "product_id": i.product_id,
                    "quantity": i.quantity,
                    "price_at_order": to_major(i.price_at_order),
                    "created_at": i.created_at,
                }
                for i in order.items
            ],
            "pricing": {
                "original_amount": to_major(order.reference_amount),
                "converted_amount": to_major(order.total_amount),
                "currency": order.total_amount_currency,
                "exchange_rate": Decimal(order.exchange_rate),
            },
        }

    def _notify(self, order: OrderModel) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_order_notification(
                order.user_id, order.id, order.total_amount, order.total_amount_currency
            )
        except Exception:
            # order is already committed, a broker outage must not turn it into a 500
            logger.exception(f"Failed to enqueue notification for order {order.id}")

    # =====================================================
    # COMMANDS
    # =====================================================

    def create_order(self, data: OrderCreate, user_id: int | None) -> Dict[str, Any]:
        """
        Use case: place an order.

        1. validate input (no transaction yet)
        2. resolve order currency from the payment method
        3. check every product exists, resolve prices in the order currency
        4. store addresses, the order and its line items
        5. commit, then enqueue the notification
        """
        self.validate_order_input(data, user_id)

        try:
            with transaction(self.db):
                currency = self.currency_service.get_currency_by_payment_method(data.payment_method)

                if not self.users.get_user(user_id):
                    raise NotFoundError(f"User with ID {user_id} not found")

                lines = self._merge_lines(data)
                found = {p.id for p in self.products.get_products_by_ids(lines)}
                for product_id in lines:
                    if product_id not in found:
                        raise InvalidProductError(product_id)

                prices = {
                    pid: self.product_service.get_product_price(pid, currency)
                    for pid in lines
                }
                total = sum(prices[pid] * qty for pid, qty in lines.items())

                if currency != REFERENCE_CURRENCY.value:
                    reference_total = sum(
                        self.product_service.get_product_price(pid, REFERENCE_CURRENCY.value) * qty
                        for pid, qty in lines.items()
                    )
                    conversion = self.currency_service.convert_currency(
                        to_major(reference_total), REFERENCE_CURRENCY.value, currency
                    )
                    exchange_rate = conversion.exchange_rate
                else:
                    reference_total = total
                    exchange_rate = Decimal(1)

                shipping = self._create_address(user_id, AddressType.SHIPPING, data.shipping_address)
                if data.billing_address is not None:
                    billing_id = self._create_address(user_id, AddressType.BILLING, data.billing_address).id
                else:
                    billing_id = shipping.id

                order = self.repo.create_order(
                    OrderModel(
                        user_id=user_id,
                        total_amount=total,
                        total_amount_currency=currency,
                        reference_amount=reference_total,
                        exchange_rate=exchange_rate,
                        status=OrderStatus.PROCESSING.value,
                        payment_method=data.payment_method,
                        shipping_address_id=shipping.id,
                        billing_address_id=billing_id,
                        notes=data.notes,
                    )
                )

                for product_id, quantity in lines.items():
                    self.repo.add_item(
                        OrderItemModel(
                            order_id=order.id,
                            product_id=product_id,
                            quantity=quantity,
                            price_at_order=prices[product_id],
                        )
                    )
        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.exception(f"Failed to create order for user {user_id}")
            raise InternalError("Failed to create order") from e

        logger.info(
            f"Order {order.id} created for user {user_id}: "
            f"{total} {currency} ({len(lines)} line items, rate {exchange_rate})"
        )
        self._notify(order)

        return self._serialize(order)

    def update_order(self, order_id: int, user_id: int | None, payload: OrderUpdate) -> Dict[str, Any]:
        user_id = self._require_user(user_id)

        with self._lock(order_id):
            try:
                with transaction(self.db):
                    order = self._get_mutable_order(order_id, user_id)

                    if payload.status is not None and payload.status.value != order.status:
                        # processing is the only non-terminal status, so any change is a final one
                        logger.info(f"Order {order_id} status {order.status} -> {payload.status.value}")
                        order.status = payload.status.value

                    if payload.notes is not None:
                        order.notes = payload.notes

                    if payload.shipping_address is not None:
                        order.shipping_address_id = self._create_address(
                            order.user_id, AddressType.SHIPPING, payload.shipping_address
                        ).id

                    if payload.billing_address is not None:
                        order.billing_address_id = self._create_address(
                            order.user_id, AddressType.BILLING, payload.billing_address
                        ).id

                    self.db.flush()
            except AppError:
                raise
            except SQLAlchemyError as e:
                logger.exception(f"Failed to update order {order_id}")
                raise InternalError("Failed to update order") from e

        logger.info(f"Order {order_id} updated")
        return self._serialize(order)

    def add_product_to_order(
        self,
        order_id: int,
        user_id: int | None,
        product_id: int,
        quantity: int = 1,
    ) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        if not product_id or product_id <= 0:
            raise ValidationError("Valid product ID is required")
        if not quantity or quantity <= 0:
            raise ValidationError("Product quantity must be greater than 0")

        with self._lock(order_id):
            try:
                with transaction(self.db):
                    order = self._get_mutable_order(order_id, user_id)

                    if not self.products.get_product(product_id):
                        raise InvalidProductError(product_id)

                    existing = self.repo.get_item(order_id, product_id)
                    if existing:
                        # the original snapshot price is kept
                        logger.info(
                            f"Product {product_id} already in order {order_id}, quantity "
                            f"{existing.quantity} -> {existing.quantity + quantity}"
                        )
                        existing.quantity += quantity
                    else:
                        price = self.product_service.get_product_price(product_id, order.total_amount_currency)
                        self.repo.add_item(
                            OrderItemModel(
                                order_id=order_id,
                                product_id=product_id,
                                quantity=quantity,
                                price_at_order=price,
                            )
                        )

                    self._recompute_totals(order)
            except AppError:
                raise
            except SQLAlchemyError as e:
                logger.exception(f"Failed to add product {product_id} to order {order_id}")
                raise InternalError("Failed to update order") from e

        logger.info(f"Product {product_id} added to order {order_id}, total {order.total_amount}")
        return self._serialize(order)

    def remove_product_from_order(
        self,
        order_id: int,
        user_id: int | None,
        product_id: int,
        quantity: int | None = None,
    ) -> Dict[str, Any]:
        """
        Removes `quantity` units of a product, or the whole line when
        quantity is omitted or covers everything left. Removing the last
        line leaves an empty order with a zero total.
        """
        user_id = self._require_user(user_id)
        if quantity is not None and quantity <= 0:
            raise ValidationError("Product quantity must be greater than 0")

        with self._lock(order_id):
            try:
                with transaction(self.db):
                    order = self._get_mutable_order(order_id, user_id)

                    item = self.repo.get_item(order_id, product_id)
                    if not item:
                        raise NotFoundError(f"Product {product_id} is not part of order {order_id}")

                    if quantity is None or quantity >= item.quantity:
                        self.repo.delete_item(item)
                    else:
                        item.quantity -= quantity

                    self._recompute_totals(order)
            except AppError:
                raise
            except SQLAlchemyError as e:
                logger.exception(f"Failed to remove product {product_id} from order {order_id}")
                raise InternalError("Failed to update order") from e

        logger.info(f"Product {product_id} removed from order {order_id}, total {order.total_amount}")
        return self._serialize(order)

    def delete_order(self, order_id: int) -> Dict[str, Any]:
        with self._lock(order_id):
            with transaction(self.db):
                order = self.repo.get_order(order_id)
                if not order:
                    raise NotFoundError(f"Order with ID {order_id} not found")
                self.repo.delete_order(order)

        logger.info(f"Order {order_id} deleted")
        return {"deleted": True, "order_id": order_id}

    # =====================================================
    # QUERY
    # =====================================================

    def get_order_by_id(self, order_id: int, user_id: int | None) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        order = self.repo.get_user_order(order_id, user_id)
        if not order:
            raise NotFoundError(f"Order with ID {order_id} not found")
        return self._serialize(order)

    def get_all_orders(
        self,
        user_id: int | None = None,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Dict[str, Any]:
        if limit <= 0:
            raise ValidationError("limit must be greater than 0")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        status = getattr(status, "value", status)
        orders, total = self.repo.list_orders(user_id=user_id, status=status, limit=limit, offset=offset)
        return {
            "orders": [self._serialize(o) for o in orders],
            "total": total,
        }
