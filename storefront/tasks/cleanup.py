# storefront/tasks/cleanup.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.cart_repo import CartRepo
from storefront.utils.settings import ABANDONED_CART_DAYS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def cleanup_abandoned_carts(db: Session, days: int = ABANDONED_CART_DAYS) -> int:
    """Delete carts nobody touched for `days`. Returns how many were removed."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    repo = CartRepo(db)

    try:
        deleted = repo.delete_idle_carts(cutoff)
        repo.commit()
    except SQLAlchemyError as e:
        repo.rollback()
        logger.error(f"Abandoned cart cleanup failed: {e}")
        raise

    logger.info(f"Removed {deleted} carts idle since {cutoff:%Y-%m-%d %H:%M}")
    return deleted


@celery_app.task(name="storefront.tasks.cleanup.cleanup_abandoned_carts_task")
def cleanup_abandoned_carts_task():
    logger.info("Abandoned cart cleanup started")

    db = SessionLocal()
    try:
        return cleanup_abandoned_carts(db)
    finally:
        db.close()
