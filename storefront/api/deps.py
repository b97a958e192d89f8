# storefront/api/deps.py
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.services.currency_service import CurrencyService
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_clients import PolarClient, RazorpayClient
from storefront.services.payment_service import PaymentService
from storefront.services.product_service import ProductService
from storefront.services.token_store import RedisTokenStore, TokenStore
from storefront.services.user_service import UserService


@dataclass
class ServiceContainer:
    """Process-wide collaborators, built once per app and shared by every request."""

    currency_service: CurrencyService
    lock_service: LockService | None
    notifier: NotificationService | None
    token_store: TokenStore
    razorpay: RazorpayClient
    polar: PolarClient


def build_container() -> ServiceContainer:
    return ServiceContainer(
        currency_service=CurrencyService(),
        lock_service=LockService(),
        notifier=NotificationService(),
        token_store=RedisTokenStore(prefix="reset:"),
        razorpay=RazorpayClient(),
        polar=PolarClient(),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_user_service(
    db: Session = Depends(get_db),
    c: ServiceContainer = Depends(get_container),
) -> UserService:
    return UserService(db, token_store=c.token_store)


def get_product_service(
    db: Session = Depends(get_db),
    c: ServiceContainer = Depends(get_container),
) -> ProductService:
    return ProductService(db, c.currency_service)


def get_order_service(
    db: Session = Depends(get_db),
    c: ServiceContainer = Depends(get_container),
) -> OrderService:
    return OrderService(
        db,
        currency_service=c.currency_service,
        lock_service=c.lock_service,
        notifier=c.notifier,
    )


def get_payment_service(
    db: Session = Depends(get_db),
    c: ServiceContainer = Depends(get_container),
) -> PaymentService:
    return PaymentService(db, razorpay=c.razorpay, polar=c.polar)
