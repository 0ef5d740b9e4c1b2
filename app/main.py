import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import create_db_and_tables
from app.routes import (
    bundles,
    cart,
    checkout,
    downloads,
    health,
    plugins,
    review,
    user_orders,
    webhooks,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="Plugin Marketplace API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(plugins.router, prefix="/plugins", tags=["Plugins"])
app.include_router(bundles.router, prefix="/bundles", tags=["Bundles"])
app.include_router(cart.router, prefix="/cart", tags=["Cart"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Payment Webhooks"])
app.include_router(user_orders.router, prefix="/orders", tags=["Orders"])
app.include_router(downloads.router, prefix="/downloads", tags=["Downloads"])
app.include_router(downloads.secure_router, tags=["Downloads"])
app.include_router(review.router, prefix="/reviews", tags=["Reviews"])


@app.get("/")
def root():
    return {
        "catalog": ["/plugins", "/plugins/{id}", "/bundles", "/bundles/{id}"],
        "cart": [
            "/cart", "/cart/items", "/cart/items/{plugin_id}",
            "/cart/coupon", "/cart/merge"
        ],
        "checkout": ["/checkout/sessions", "/checkout/confirm"],
        "webhooks": ["/webhooks/stripe", "/webhooks/paypal"],
        "orders": ["/orders", "/orders/{id}"],
        "downloads": [
            "/downloads",
            "/downloads/orders/{order_id}/plugins/{plugin_id}/link",
            "/secure-download/{download_id}::{token}"
        ],
        "reviews": ["/reviews/plugins/{plugin_id}"],
    }
