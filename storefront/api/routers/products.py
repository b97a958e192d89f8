# storefront/api/routers/products.py
from typing import List

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_product_service
from storefront.domain.enums import Currency
from storefront.domain.schemas import ProductCreate, ProductOut, ProductPriceOut, ProductUpdate
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/", response_model=List[ProductOut])
def list_products(svc: ProductService = Depends(get_product_service)):
    return svc.get_products()


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(payload: ProductCreate, svc: ProductService = Depends(get_product_service)):
    """
    Creates a product priced in one currency, the other currencies are
    converted at the current rate.
    """
    return svc.create_product(payload)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, svc: ProductService = Depends(get_product_service)):
    return svc.get_product_by_id(product_id)


@router.get("/{product_id}/prices/{currency}", response_model=ProductPriceOut)
def get_product_price(
    product_id: int,
    currency: Currency,
    svc: ProductService = Depends(get_product_service),
):
    return {
        "product_id": product_id,
        "currency": currency,
        "amount": svc.get_product_price(product_id, currency.value),
    }


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    svc: ProductService = Depends(get_product_service),
):
    return svc.update_product(product_id, payload)


@router.post("/{product_id}/reprice", response_model=ProductOut)
def reprice_product(
    product_id: int,
    base_currency: Currency = Query(Currency.INR),
    svc: ProductService = Depends(get_product_service),
):
    return svc.reprice_product(product_id, base_currency)


@router.delete("/{product_id}")
def delete_product(product_id: int, svc: ProductService = Depends(get_product_service)):
    return svc.delete_product(product_id)
