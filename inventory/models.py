"""Core SQLAlchemy models (2.x style) for the inventory schema.

A single ``vehicles`` table keyed by the dealer inventory number
(``hexon_nr``), mirrored by the hosted Postgres database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class VehicleStatus(str, Enum):
    """Vehicle lifecycle status."""
    ACTIVE = "active"
    SOLD = "sold"
    ARCHIVED = "archived"


class Vehicle(Base):
    """Vehicles table."""
    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hexon_nr: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    # Core
    license_plate: Mapped[str | None] = mapped_column(String(32))
    make: Mapped[str | None] = mapped_column(String(100), index=True)
    model: Mapped[str | None] = mapped_column(String(255))
    variant: Mapped[str | None] = mapped_column(String(255))
    price: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    year: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    model_year: Mapped[int | None] = mapped_column(Integer)
    mileage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fuel_type: Mapped[str | None] = mapped_column(String(50))
    transmission: Mapped[str | None] = mapped_column(String(50))
    body_type: Mapped[str | None] = mapped_column(String(100))
    vehicle_type: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    is_new: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Media & classification
    image_urls: Mapped[str | None] = mapped_column(Text)
    categories: Mapped[list[str] | None] = mapped_column(JSON)
    options: Mapped[list[str] | None] = mapped_column(JSON)

    # Exterior
    color: Mapped[str | None] = mapped_column(String(100))
    color_code: Mapped[str | None] = mapped_column(String(50))
    paint_type: Mapped[str | None] = mapped_column(String(50))
    doors: Mapped[int | None] = mapped_column(Integer)

    # Interior
    interior_color: Mapped[str | None] = mapped_column(String(100))
    upholstery: Mapped[str | None] = mapped_column(String(100))
    seats: Mapped[int | None] = mapped_column(Integer)

    # Engine & performance
    horsepower: Mapped[int | None] = mapped_column(Integer)
    kw_power: Mapped[int | None] = mapped_column(Integer)
    engine_cc: Mapped[int | None] = mapped_column(Integer)
    cylinders: Mapped[int | None] = mapped_column(Integer)
    gears: Mapped[int | None] = mapped_column(Integer)
    torque: Mapped[int | None] = mapped_column(Integer)
    top_speed: Mapped[int | None] = mapped_column(Integer)
    acceleration: Mapped[float | None] = mapped_column(Float)

    # Fuel consumption
    fuel_city: Mapped[float | None] = mapped_column(Float)
    fuel_highway: Mapped[float | None] = mapped_column(Float)
    fuel_combined: Mapped[float | None] = mapped_column(Float)
    fuel_range: Mapped[int | None] = mapped_column(Integer)

    # Emissions
    co2_emission: Mapped[int | None] = mapped_column(Integer)
    energy_label: Mapped[str | None] = mapped_column(String(10))
    emission_class: Mapped[str | None] = mapped_column(String(50))
    particulate_filter: Mapped[bool | None] = mapped_column(Boolean)

    # Weight & dimensions
    weight: Mapped[int | None] = mapped_column(Integer)
    max_weight: Mapped[int | None] = mapped_column(Integer)
    payload: Mapped[int | None] = mapped_column(Integer)
    tow_weight_braked: Mapped[int | None] = mapped_column(Integer)
    tow_weight_unbraked: Mapped[int | None] = mapped_column(Integer)
    wheelbase: Mapped[int | None] = mapped_column(Integer)
    length: Mapped[int | None] = mapped_column(Integer)
    width: Mapped[int | None] = mapped_column(Integer)
    height: Mapped[int | None] = mapped_column(Integer)

    # Registration & legal
    vin: Mapped[str | None] = mapped_column(String(32))
    btw_marge: Mapped[str | None] = mapped_column(String(20))
    first_registration: Mapped[str | None] = mapped_column(String(20))
    construction_date: Mapped[str | None] = mapped_column(String(20))

    # APK & warranty
    apk_until: Mapped[str | None] = mapped_column(String(20))
    warranty_months: Mapped[int | None] = mapped_column(Integer)
    warranty_km: Mapped[int | None] = mapped_column(Integer)

    # History
    previous_owners: Mapped[int | None] = mapped_column(Integer)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default=VehicleStatus.ACTIVE.value,
        nullable=False,
        index=True,
    )
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    display_order: Mapped[int | None] = mapped_column(Integer, default=9999)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    @property
    def image_list(self) -> list[str]:
        return [url for url in (self.image_urls or "").split(",") if url]

    __table_args__ = (
        Index("ix_vehicles_status_sold_at", "status", "sold_at"),
        Index("ix_vehicles_display_order", "display_order"),
    )
