# storefront/api/routers/health.py
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from storefront.api.deps import ServiceContainer, get_container
from storefront.data.database import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
def health(
    db: Session = Depends(get_db),
    c: ServiceContainer = Depends(get_container),
):
    db.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "exchange_api_configured": c.currency_service.is_api_configured(),
    }
