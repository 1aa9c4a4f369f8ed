import asyncio
import logging
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.fleet_gps.config import get_settings
from src.fleet_gps.database.database import DatabaseManager
from src.fleet_gps.health_check.routes import health_router
from src.fleet_gps.logging_config import setup_logging
from src.fleet_gps.refresh.dependencies import refresh_service, speed_detector
from src.fleet_gps.refresh.scheduler import GpsRefreshScheduler
from src.fleet_gps.vehicles.routes import gps_router

setup_logging()
logger = logging.getLogger(__name__)
settings = get_settings()
PROJECT_NAME = settings.PROJECT_NAME
ALL_CORS_ORIGINS = settings.all_cors_origins


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore
    scheduler = None
    try:
        await DatabaseManager.connect()
        await DatabaseManager.create_tables()

        loop = asyncio.get_running_loop()
        scheduler = GpsRefreshScheduler(refresh_service, settings, loop)
        scheduler.run()

        logger.info("Startup complete")
        yield

        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Startup failed: {str(e)}")
        raise
    finally:
        if scheduler is not None:
            scheduler.stop()
        await speed_detector.wait_for_deliveries()
        await DatabaseManager.disconnect()
        logger.info("Shutdown complete")


app = FastAPI(title=PROJECT_NAME, version="0.1.0", lifespan=lifespan)


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    return JSONResponse(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        content={
            "detail": "Database connection error. Please try again later.",
            "error": str(exc),
        },
    )


# Set all CORS enabled origins
if ALL_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALL_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# API Routes
api_router = APIRouter(prefix="/api")
api_router.include_router(gps_router)
app.include_router(api_router)
app.include_router(health_router)
