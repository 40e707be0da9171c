import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError

import routes_admin
import routes_analytics
import routes_deliveries
import routes_menu
import routes_order_count
import routes_orders
import routes_payment_requests
import routes_payments
import routes_razorpay
import routes_reservations
import routes_restaurant
import routes_reviews
import routes_sessions
import routes_tables
from config import get_settings
from database import ensure_indexes, get_db
from errors import install_error_handlers
from observability import RequestIdMiddleware, configure_logging

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    try:
        ensure_indexes(get_db())
    except PyMongoError as exc:
        logger.warning("could not ensure indexes at startup: %s", exc)
    yield


app = FastAPI(title="Restaurant POS API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)
install_error_handlers(app)

for module in (
    routes_menu,
    routes_orders,
    routes_tables,
    routes_reservations,
    routes_sessions,
    routes_payments,
    routes_payment_requests,
    routes_deliveries,
    routes_admin,
    routes_analytics,
    routes_razorpay,
    routes_restaurant,
    routes_reviews,
    routes_order_count,
):
    app.include_router(module.router)


# ----------------------------
# Root & health
# ----------------------------
@app.get("/")
def read_root():
    return {"message": "Restaurant POS Backend Running"}


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("MONGO_URI") or os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
