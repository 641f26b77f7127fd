import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.endpoints import orders as orders_api
from app.api.endpoints import payments as payments_api
from app.api.endpoints import subscriptions as subscriptions_api
from app.api.endpoints import wallets as wallets_api
from app.api.endpoints import notifications as notifications_api
from app.core.config import LOG_LEVEL
from app.core.exceptions import ServiceError

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Harvest Commerce API", version="0.1.0")

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# Include API routers
app.include_router(orders_api.router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(payments_api.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(subscriptions_api.router, prefix="/api/v1/subscriptions", tags=["Subscriptions"])
app.include_router(wallets_api.router, prefix="/api/v1/wallets", tags=["Wallets"])
app.include_router(notifications_api.router, prefix="/api/v1/notifications", tags=["Notifications"])

@app.get("/ping", tags=["Health Check"])
async def ping():
    return {"message": "pong"}
