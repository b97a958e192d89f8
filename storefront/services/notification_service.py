# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.services.product_service import to_major
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Order confirmations, delivered by a Celery worker after the order commits.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, total_amount: int, currency: str):
        # plain ints and strings only, the broker serializes task args as JSON
        send_order_notification_task.delay(user_id, order_id, total_amount, currency)


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, total_amount: int, currency: str):
    total = f"{to_major(total_amount)} {currency.upper()}"
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_id} placed, total {total}, awaiting payment")
    return {
        "user_id": user_id,
        "order_id": order_id,
        "total": total,
        "status": "sent",
    }
