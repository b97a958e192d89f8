from decimal import Decimal

import pytest

from storefront.domain.enums import Category, Currency
from storefront.domain.errors import ConflictError, NotFoundError, PriceNotFoundError
from storefront.domain.schemas import OrderCreate, OrderItemIn, ProductCreate, ProductUpdate
from storefront.repos.product_repo import ProductRepo
from storefront.services.product_service import to_major, to_minor


def test_minor_major_helpers():
    assert to_major(12900) == Decimal("129.00")
    assert to_minor(Decimal("1.55")) == 155


def test_create_product_derives_other_currency(make_product):
    product = make_product(amount=12900, currency=Currency.INR, name="Classic Reader")
    # 129.00 inr * 0.012 = 1.548 usd
    assert product["rates"] == {"inr": 12900, "usd": 155}
    assert product["name"] == "Classic Reader"
    assert product["category"] == "Electronics"


def test_create_product_from_usd(make_product):
    product = make_product(amount=500, currency=Currency.USD)
    assert product["rates"] == {"usd": 500, "inr": 41665}


def test_duplicate_name_is_conflict(make_product, db):
    make_product(name="Urban Tee")
    with pytest.raises(ConflictError):
        make_product(name="Urban Tee")
    assert len(ProductRepo(db).list_products()) == 1


def test_get_product_and_list(make_product, product_service):
    a = make_product(name="A")
    make_product(name="B")
    assert product_service.get_product_by_id(a["id"])["name"] == "A"
    assert [p["name"] for p in product_service.get_products()] == ["A", "B"]

    with pytest.raises(NotFoundError):
        product_service.get_product_by_id(999)


def test_get_product_price_requires_exact_row(make_product, product_service, db):
    p = make_product(amount=2500)
    assert product_service.get_product_price(p["id"], "inr") == 2500

    db.delete(ProductRepo(db).get_price(p["id"], "usd"))
    db.commit()

    with pytest.raises(PriceNotFoundError):
        product_service.get_product_price(p["id"], "usd")


def test_update_only_supplied_fields(make_product, product_service):
    p = make_product(amount=4500, name="Mastering TypeScript", category=Category.BOOKS)
    updated = product_service.update_product(p["id"], ProductUpdate(description="2nd edition"))
    assert updated["description"] == "2nd edition"
    assert updated["name"] == "Mastering TypeScript"
    assert updated["rates"] == p["rates"]


def test_update_price_touches_only_that_currency(make_product, product_service):
    p = make_product(amount=4500)
    updated = product_service.update_product(p["id"], ProductUpdate(amount=9000, currency=Currency.INR))
    assert updated["rates"]["inr"] == 9000
    assert updated["rates"]["usd"] == p["rates"]["usd"]

    repriced = product_service.reprice_product(p["id"], Currency.INR)
    assert repriced["rates"] == {"inr": 9000, "usd": 108}


def test_update_name_conflict(make_product, product_service):
    make_product(name="Nordic Chair")
    other = make_product(name="Wool Scarf")
    with pytest.raises(ConflictError):
        product_service.update_product(other["id"], ProductUpdate(name="Nordic Chair"))


def test_update_missing_product(product_service):
    with pytest.raises(NotFoundError):
        product_service.update_product(42, ProductUpdate(name="x"))


def test_delete_product_removes_prices_and_is_not_idempotent(make_product, product_service, db):
    p = make_product()
    assert product_service.delete_product(p["id"]) == {"success": True}
    assert ProductRepo(db).get_prices(p["id"]) == []

    with pytest.raises(NotFoundError):
        product_service.delete_product(p["id"])


def test_delete_product_blocked_while_ordered(make_product, product_service, order_service, user, address):
    p = make_product()
    order_service.create_order(
        OrderCreate(
            payment_method="razorpay",
            shipping_address=address,
            products=[OrderItemIn(product_id=p["id"], quantity=1)],
        ),
        user.id,
    )
    with pytest.raises(ConflictError):
        product_service.delete_product(p["id"])
    assert product_service.get_product_by_id(p["id"])["id"] == p["id"]


def test_product_create_schema_rejects_bad_amount():
    with pytest.raises(ValueError):
        ProductCreate(name="x", category=Category.BOOKS, amount=0, currency=Currency.INR)
    with pytest.raises(ValueError):
        ProductUpdate(amount=100)


def test_seed_populates_empty_catalog_once(engine, currency_service, monkeypatch):
    from sqlalchemy.orm import sessionmaker

    from storefront.data import seed as seed_module

    factory = sessionmaker(bind=engine, autoflush=False)
    monkeypatch.setattr(seed_module, "SessionLocal", factory)

    seed_module.seed(currency_service)
    seed_module.seed(currency_service)

    session = factory()
    try:
        products = ProductRepo(session).list_products()
        assert len(products) == len(seed_module.SAMPLE_PRODUCTS)
        reader = ProductRepo(session).get_product_by_name("Classic Reader")
        assert ProductRepo(session).get_price(reader.id, "inr").amount == 12900
    finally:
        session.close()
