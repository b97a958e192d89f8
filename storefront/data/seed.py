# storefront/data/seed.py
from storefront.data.database import SessionLocal
from storefront.data.models import ProductModel
from storefront.domain.enums import Category, Currency
from storefront.domain.schemas import ProductCreate
from storefront.services.currency_service import CurrencyService
from storefront.services.product_service import ProductService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# inr, minor units
SAMPLE_PRODUCTS = [
    ("Classic Reader", "High-quality e-reader for book lovers.", 12900, Category.ELECTRONICS),
    ("Urban Tee", "Comfortable cotton t-shirt for daily wear.", 2500, Category.CLOTHING),
    ("Mastering TypeScript", "Complete guide to advanced TypeScript patterns.", 4500, Category.BOOKS),
    ("Nordic Chair", "Minimalist wooden chair for modern interiors.", 8900, Category.FURNITURE),
    ("Pro Headphones", "Noise-canceling headphones for professional audio.", 29900, Category.ELECTRONICS),
    ("Wool Scarf", "Warm and cozy scarf for winter seasons.", 3200, Category.CLOTHING),
    ("Recipe Collection", "Delicious recipes from around the world.", 3800, Category.BOOKS),
]


def seed(currency_service: CurrencyService | None = None):
    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(ProductModel).first():
            return
        svc = ProductService(db, currency_service or CurrencyService())
        for name, description, amount, category in SAMPLE_PRODUCTS:
            svc.create_product(
                ProductCreate(
                    name=name,
                    description=description,
                    category=category,
                    amount=amount,
                    currency=Currency.INR,
                )
            )
        logger.info(f"Seeded {len(SAMPLE_PRODUCTS)} products")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
