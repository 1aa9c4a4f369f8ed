from datetime import datetime
from typing import Optional

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.fleet_gps.database.database import Base


class VehicleLastStateModel(Base):
    __tablename__ = "gps_vehicle_last"

    vehicle_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=False
    )
    plate: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    driver_name: Mapped[Optional[str]] = mapped_column(String(100))
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    velocity: Mapped[Optional[int]] = mapped_column(Integer)
    address: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    direction: Mapped[Optional[float]] = mapped_column(Float)
    time_indicator: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP)
    drive_time: Mapped[Optional[float]] = mapped_column(Float)
    work_time: Mapped[Optional[float]] = mapped_column(Float)
    idle_time: Mapped[Optional[float]] = mapped_column(Float)
    stop_time: Mapped[Optional[float]] = mapped_column(Float)
    total_distance: Mapped[Optional[float]] = mapped_column(Float)
    start_km: Mapped[Optional[float]] = mapped_column(Float)
    flags: Mapped[Optional[int]] = mapped_column(Integer)
    communication_ok: Mapped[Optional[bool]] = mapped_column(Boolean)
    color_code: Mapped[Optional[str]] = mapped_column(String(20))
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)


class VehicleHistoryModel(Base):
    __tablename__ = "gps_vehicle_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    plate: Mapped[Optional[str]] = mapped_column(String(50))
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    velocity: Mapped[Optional[int]] = mapped_column(Integer)
    time_indicator: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP, index=True)
    address: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    drive_time: Mapped[Optional[float]] = mapped_column(Float)
    work_time: Mapped[Optional[float]] = mapped_column(Float)
    idle_time: Mapped[Optional[float]] = mapped_column(Float)
    stop_time: Mapped[Optional[float]] = mapped_column(Float)
    total_distance: Mapped[Optional[float]] = mapped_column(Float)
    start_km: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "vehicle_id", "time_indicator", name="uq_vehicle_history_time"
        ),
    )
