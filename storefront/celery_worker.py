# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    CART_CLEANUP_INTERVAL_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks live outside this module, import them explicitly so the worker registers them
celery_app.conf.imports = (
    "storefront.tasks.cleanup",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "cleanup-abandoned-carts": {
        "task": "storefront.tasks.cleanup.cleanup_abandoned_carts_task",
        "schedule": CART_CLEANUP_INTERVAL_SECONDS,  # every 6 hours by default
    },
}

celery_app.conf.timezone = "UTC"
