import logging
from http import HTTPStatus
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.fleet_gps.database.dependencies import verify_database
from src.fleet_gps.signals.schemas import DriveStopReport
from src.fleet_gps.vehicles.dependencies import get_vehicle_service
from src.fleet_gps.vehicles.schemas import (
    HistoryPageResponse,
    LastKnownState,
    LiveResponse,
    TachographResponse,
    VehicleDetailResponse,
    VehiclePlate,
)
from src.fleet_gps.vehicles.services import VehicleService

logger = logging.getLogger(__name__)
gps_router = APIRouter(prefix="/gps", tags=["GPS"])

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


@gps_router.get("/live", response_model=LiveResponse, status_code=HTTPStatus.OK)
async def get_live(
    refresh: bool = Query(True, description="Poll the upstream before reading"),
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.get_live(db_session, refresh=refresh)


@gps_router.post("/refresh", response_model=LiveResponse, status_code=HTTPStatus.OK)
async def refresh(
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    logger.info("Manual GPS refresh requested")
    return await service.get_live(db_session, refresh=True)


@gps_router.get("/vehicles", response_model=List[VehiclePlate])
async def list_vehicles(
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.get_vehicle_list(db_session)


@gps_router.get("/vehicles/by-plate", response_model=Dict[str, LastKnownState])
async def get_vehicles_by_plate(
    plates: List[str] = Query(..., description="Plates, matched ignoring spaces"),
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.get_by_plates(db_session, plates)


@gps_router.get("/vehicles/{vehicle_id}", response_model=VehicleDetailResponse)
async def get_vehicle(
    vehicle_id: int,
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.get_vehicle_detail(db_session, vehicle_id)


@gps_router.get(
    "/vehicles/{vehicle_id}/history", response_model=HistoryPageResponse
)
async def get_vehicle_history(
    vehicle_id: int,
    start_date: Optional[str] = Query(
        None, description="Local date in YYYY-MM-DD format", pattern=DATE_PATTERN
    ),
    end_date: Optional[str] = Query(
        None, description="Local date in YYYY-MM-DD format", pattern=DATE_PATTERN
    ),
    page: int = Query(1),
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    logger.info(f"Request history for {vehicle_id} ({start_date} - {end_date})")
    return await service.get_history_page(
        db_session, vehicle_id, start_date, end_date, page
    )


@gps_router.get("/vehicles/{vehicle_id}/report", response_model=DriveStopReport)
async def get_drive_stop_report(
    vehicle_id: int,
    start_date: Optional[str] = Query(None, description="Local date in YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="Local date in YYYY-MM-DD"),
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    logger.info(f"Request drive/stop report for {vehicle_id}")
    return await service.get_drive_stop_report(
        db_session, vehicle_id, start_date, end_date
    )


@gps_router.get("/tachograph", response_model=TachographResponse)
async def get_tachograph(
    vehicle_id: Optional[int] = Query(None),
    range: str = Query("24h", description="24h or 7d"),
    db_session: AsyncSession = Depends(verify_database),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.get_tachograph(db_session, vehicle_id, range)
