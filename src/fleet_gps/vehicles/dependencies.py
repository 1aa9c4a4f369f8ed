from src.fleet_gps.refresh.dependencies import refresh_service, settings, vehicle_repo
from src.fleet_gps.vehicles.services import VehicleService

service = VehicleService(vehicle_repo, refresh_service, settings)


def get_vehicle_service() -> VehicleService:
    return service
