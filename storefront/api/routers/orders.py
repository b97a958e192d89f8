# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_order_service
from storefront.domain.enums import OrderStatus
from storefront.domain.schemas import (
    OrderCreate,
    OrderDeletedOut,
    OrderListOut,
    OrderOut,
    OrderProductIn,
    OrderUpdate,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int | None = Query(None),
    svc: OrderService = Depends(get_order_service),
):
    """
    Places an order. The currency follows the payment method and the
    notification is sent asynchronously.
    """
    return svc.create_order(payload, user_id if user_id is not None else payload.user_id)


@router.get("/", response_model=OrderListOut)
def list_orders(
    user_id: int | None = Query(None),
    status: OrderStatus | None = Query(None),
    limit: int = Query(10, gt=0, le=100),
    offset: int = Query(0, ge=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_all_orders(user_id=user_id, status=status, limit=limit, offset=offset)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_order_by_id(order_id, user_id)


@router.patch("/{order_id}", response_model=OrderOut)
def update_order(
    order_id: int,
    payload: OrderUpdate,
    user_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.update_order(order_id, user_id, payload)


@router.post("/{order_id}/products", response_model=OrderOut)
def add_product(
    order_id: int,
    payload: OrderProductIn,
    user_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.add_product_to_order(order_id, user_id, payload.product_id, payload.quantity)


@router.delete("/{order_id}/products/{product_id}", response_model=OrderOut)
def remove_product(
    order_id: int,
    product_id: int,
    user_id: int = Query(..., gt=0),
    quantity: int | None = Query(None, gt=0),
    svc: OrderService = Depends(get_order_service),
):
    return svc.remove_product_from_order(order_id, user_id, product_id, quantity)


@router.delete("/{order_id}", response_model=OrderDeletedOut)
def delete_order(order_id: int, svc: OrderService = Depends(get_order_service)):
    return svc.delete_order(order_id)
