from http import HTTPStatus

from fastapi import HTTPException


class GPSDatabaseException(Exception):
    """Exception for failed telemetry writes. The batch has been rolled back."""

    message = "Failed to save GPS telemetry to database."

    def __init__(self, vehicle_count: int, details: str = ""):
        self.vehicle_count = vehicle_count
        self.details = details
        message = f"{self.message} Vehicles in batch: {vehicle_count}"
        if details != "":
            message += f" Details: {details}"
        super().__init__(message)


class GPSException(HTTPException):
    """Base exception class for GPS query errors."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    message = "An error occurred in GPS processing."

    def __init__(
        self,
        status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
        message: str = "An error occurred in GPS processing.",
    ):
        self.status_code = status_code
        self.message = message or self.message
        super().__init__(status_code=status_code, detail=self.message)


class GPSVehicleNotFoundException(GPSException):
    """Exception for a vehicle id with no last known state."""

    status_code = HTTPStatus.NOT_FOUND
    message = "Vehicle not found."

    def __init__(self, vehicle_id: int):
        self.vehicle_id = vehicle_id
        message = f"{self.message} Vehicle ID: {vehicle_id}"
        super().__init__(status_code=self.status_code, message=message)


class GPSInvalidDateException(GPSException):
    """Exception for invalid or missing dates."""

    status_code = HTTPStatus.BAD_REQUEST
    message = "Invalid date format."

    def __init__(self, date: str):
        self.date = date
        message = f"{self.message} Provided date: {date}"
        super().__init__(status_code=self.status_code, message=message)
