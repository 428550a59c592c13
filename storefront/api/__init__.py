# storefront/api/__init__.py
from fastapi import FastAPI
from storefront.api.routers import carts, checkout, admin_orders
from storefront.api.routers.health import router as health_router


def create_app():
    app = FastAPI(title="Storefront Checkout", version="1.0.0")
    app.include_router(health_router)
    app.include_router(carts.router)
    app.include_router(checkout.router)
    app.include_router(admin_orders.router)
    return app
