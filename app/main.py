import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.core.errors import DateOrderError
from app.core.scheduler import start_scheduler, shutdown_scheduler
from app.api.orders import router as orders_router
from app.api.admin import router as admin_router

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO,
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up FastAPI...")
    if settings.SCHEDULER_ENABLED:
        await start_scheduler()
    yield
    logger.info("Shutting down FastAPI...")
    await shutdown_scheduler()


app = FastAPI(
    title="DineDate Orders API",
    docs_url="/docs" if settings.ENV != "production" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# Include routers
app.include_router(orders_router)
app.include_router(admin_router)


@app.exception_handler(DateOrderError)
async def date_order_error_handler(request: Request, exc: DateOrderError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/")
async def root():
    return {"message": "DineDate Orders API", "version": "1.0"}
