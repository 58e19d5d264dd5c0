"""FastAPI app with the feed webhook, sold sweep and catalog endpoints.

The feed webhook and the cleanup endpoint keep the wire formats their
callers expect (a bare ``1``/``0`` body for the feed, a small JSON object
for the sweep); the catalog API uses regular JSON DTOs.
"""
from __future__ import annotations

import base64
import binascii
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field, computed_field
from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog
from .catalog import CatalogError, CatalogFilters, SortOption
from .config import FeedSettings, Settings, get_settings, settings as app_settings
from .db import dispose_engine, get_session
from .logging_config import setup_logging
from .models import VehicleStatus
from .parsers import ParseError
from .pipelines.cleanup import CleanupError, cleanup_sold_vehicles
from .pipelines.processing import FeedProcessingError, import_feed_payload
from .storage import StorageClient, get_storage

logger = logging.getLogger(__name__)

FEED_OK = "1"
FEED_FAIL = "0"

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


# Pydantic response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class CleanupResponse(BaseModel):
    """Sold sweep response."""
    success: bool
    message: str
    deleted: int


class VehicleAttributes(BaseModel):
    """Descriptive vehicle attributes."""
    model_config = ConfigDict(protected_namespaces=())

    license_plate: str | None = None
    make: str | None = None
    model: str | None = None
    variant: str | None = None
    price: float | None = Field(default=None, ge=0)
    year: int | None = Field(default=None, ge=0)
    model_year: int | None = None
    mileage: int | None = Field(default=None, ge=0)
    fuel_type: str | None = None
    transmission: str | None = None
    body_type: str | None = None
    vehicle_type: str | None = None
    description: str | None = None
    is_new: bool | None = None
    categories: list[str] | None = None
    options: list[str] | None = None
    color: str | None = None
    color_code: str | None = None
    paint_type: str | None = None
    doors: int | None = None
    interior_color: str | None = None
    upholstery: str | None = None
    seats: int | None = None
    horsepower: int | None = None
    kw_power: int | None = None
    engine_cc: int | None = None
    cylinders: int | None = None
    gears: int | None = None
    torque: int | None = None
    top_speed: int | None = None
    acceleration: float | None = None
    fuel_city: float | None = None
    fuel_highway: float | None = None
    fuel_combined: float | None = None
    fuel_range: int | None = None
    co2_emission: int | None = None
    energy_label: str | None = None
    emission_class: str | None = None
    particulate_filter: bool | None = None
    weight: int | None = None
    max_weight: int | None = None
    payload: int | None = None
    tow_weight_braked: int | None = None
    tow_weight_unbraked: int | None = None
    wheelbase: int | None = None
    length: int | None = None
    width: int | None = None
    height: int | None = None
    vin: str | None = None
    btw_marge: str | None = None
    first_registration: str | None = None
    construction_date: str | None = None
    apk_until: str | None = None
    warranty_months: int | None = None
    warranty_km: int | None = None
    previous_owners: int | None = None


class VehicleFields(VehicleAttributes):
    """Editable vehicle fields."""
    images: list[str] | None = None
    status: VehicleStatus | None = None
    display_order: int | None = None

    def to_columns(self, *, exclude_unset: bool = False) -> dict:
        """Column values, with ``images`` folded into ``image_urls``."""
        data = self.model_dump(exclude_unset=exclude_unset)
        if "images" in data:
            images = data.pop("images")
            if images is not None or exclude_unset:
                data["image_urls"] = ",".join(images or [])
        return data


class CreateVehicleRequest(VehicleFields):
    """Create vehicle request."""
    hexon_nr: int | None = Field(default=None, ge=0)
    make: str = Field(min_length=1, max_length=100)
    model: str = Field(min_length=1, max_length=255)


class UpdateVehicleRequest(VehicleFields):
    """Update vehicle request; only supplied fields change."""
    hexon_nr: int | None = Field(default=None, ge=0)


class ReorderRequest(BaseModel):
    """Vehicle ids in display order."""
    ids: list[int] = Field(min_length=1)


class VehicleDTO(VehicleAttributes):
    """Vehicle as served to the site."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    hexon_nr: int
    price: float
    year: int
    mileage: int
    image_urls: str | None = Field(default=None, exclude=True)
    status: VehicleStatus
    display_order: int | None = None
    sold_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def images(self) -> list[str]:
        return [url for url in (self.image_urls or "").split(",") if url]

    @computed_field
    @property
    def image(self) -> str:
        images = self.images
        return images[0] if images else ""

    @computed_field
    @property
    def featured(self) -> bool:
        return "Recent" in (self.categories or [])

    @computed_field
    @property
    def is_sold(self) -> bool:
        return self.status == VehicleStatus.SOLD

    @computed_field
    @property
    def is_archived(self) -> bool:
        return self.status == VehicleStatus.ARCHIVED


class FacetsResponse(BaseModel):
    """Distinct filter values."""
    makes: list[str]
    fuels: list[str]
    transmissions: list[str]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    yield

    # Shutdown
    logger.info("Application shutting down")
    await dispose_engine()


app = FastAPI(
    title="Dealer Inventory Service",
    version=app_settings.version,
    description="Inventory feed import, sold sweep and vehicle catalog",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_error_handler(request, exc: CatalogError):
    """Handle catalog errors."""
    logger.warning(f"Catalog error: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.error,
            detail=str(exc),
        ).model_dump(),
    )


async def require_admin(
    x_admin_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard admin endpoints with the shared admin key."""
    expected = settings.admin.api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured",
        )
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )


@app.get("/health", response_model=HealthResponse)
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
    )


@app.get("/")
async def root(settings: Settings = Depends(get_settings)):
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "feed_import": "/mobilox-import",
            "cleanup_sold": "/cleanup-sold",
            "vehicles": "/vehicles",
            "vehicle": "/vehicles/{vehicle_id}",
            "facets": "/vehicles/facets",
            "docs": "/docs",
        },
    }


# Feed webhook

def _feed_response(status_code: int) -> PlainTextResponse:
    body = FEED_OK if status_code == status.HTTP_200_OK else FEED_FAIL
    return PlainTextResponse(body, status_code=status_code)


def _decode_basic_auth(header: str) -> tuple[str, str] | None:
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user, password


def authenticate_feed(authorization: str | None, feed: FeedSettings) -> int | None:
    """Check feed Basic credentials.

    Returns:
        None when authenticated, otherwise the HTTP status to answer with
    """
    if not authorization:
        return status.HTTP_401_UNAUTHORIZED

    if not feed.user or not feed.password:
        logger.error("Missing MOBILOX_USER or MOBILOX_PASS environment variables")
        return status.HTTP_500_INTERNAL_SERVER_ERROR

    credentials = _decode_basic_auth(authorization)
    if credentials is None:
        return status.HTTP_401_UNAUTHORIZED

    user, password = credentials
    user_ok = secrets.compare_digest(user.encode(), feed.user.encode())
    password_ok = secrets.compare_digest(password.encode(), feed.password.encode())
    if not (user_ok and password_ok):
        return status.HTTP_401_UNAUTHORIZED
    return None


@app.api_route("/mobilox-import", methods=ALL_METHODS, response_class=PlainTextResponse)
@app.api_route("/api/mobilox-import", methods=ALL_METHODS, response_class=PlainTextResponse, include_in_schema=False)
async def mobilox_import(
    request: Request,
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """Receive one vehicle from the inventory feed.

    Answers ``1`` on success and ``0`` on any failure, as the feed
    provider expects.
    """
    failure = authenticate_feed(authorization, settings.feed)
    if failure is not None:
        return _feed_response(failure)

    if request.method != "POST":
        return _feed_response(status.HTTP_405_METHOD_NOT_ALLOWED)

    max_bytes = settings.feed.max_body_bytes
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        return _feed_response(status.HTTP_413_CONTENT_TOO_LARGE)

    body = await request.body()
    if len(body) > max_bytes:
        return _feed_response(status.HTTP_413_CONTENT_TOO_LARGE)

    try:
        result = await import_feed_payload(session, body)
    except (ParseError, FeedProcessingError) as e:
        logger.error(f"Mobilox import error: {e}")
        return _feed_response(status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception as e:
        logger.error(f"Unexpected Mobilox import error: {e}", exc_info=True)
        return _feed_response(status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(f"Mobilox {result.action or 'unknown'} for vehicle {result.hexon_nr} applied={result.applied}")
    return _feed_response(status.HTTP_200_OK)


# Sold sweep

@app.api_route("/cleanup-sold", methods=ALL_METHODS)
@app.api_route("/api/cleanup-sold", methods=ALL_METHODS, include_in_schema=False)
async def cleanup_sold(
    request: Request,
    key: str | None = Query(default=None),
    x_cleanup_key: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
    storage: StorageClient | None = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """Purge vehicles sold longer than the retention window ago.

    Meant to be called by a cron job.
    """
    logger.info("Cleanup of sold vehicles started")

    if request.method not in ("GET", "POST"):
        return JSONResponse(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            content={"error": "Method not allowed"},
        )

    expected = settings.cleanup.secret_key
    provided = x_cleanup_key or key
    if expected and not (provided and secrets.compare_digest(provided, expected)):
        logger.error("Unauthorized cleanup attempt")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Unauthorized"},
        )

    try:
        result = await cleanup_sold_vehicles(
            session,
            storage,
            retention_days=settings.cleanup.retention_days,
            bucket=settings.cleanup.bucket,
        )
    except CleanupError as e:
        logger.error(f"Cleanup failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
        )

    if result.found == 0:
        message = "No sold vehicles to cleanup"
    else:
        message = f"Cleaned up {result.deleted} sold vehicles"

    return CleanupResponse(success=True, message=message, deleted=result.deleted)


# Catalog (public)

@app.get("/vehicles", response_model=list[VehicleDTO])
async def list_vehicles(
    category: str | None = None,
    make: str | None = None,
    fuel: str | None = None,
    transmission: str | None = None,
    max_price: float | None = Query(default=None, ge=0),
    max_mileage: int | None = Query(default=None, ge=0),
    min_year: int | None = Query(default=None, ge=0),
    include_sold: bool = True,
    include_archived: bool = False,
    sort: SortOption = SortOption.DISPLAY,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> list[VehicleDTO]:
    """List vehicles for the catalog pages."""
    filters = CatalogFilters(
        category=category,
        make=make,
        fuel=fuel,
        transmission=transmission,
        max_price=max_price,
        max_mileage=max_mileage,
        min_year=min_year,
        include_sold=include_sold,
        include_archived=include_archived,
    )
    vehicles = await catalog.list_vehicles(session, filters, sort=sort, skip=skip, limit=limit)
    return [VehicleDTO.model_validate(v) for v in vehicles]


@app.get("/vehicles/facets", response_model=FacetsResponse)
async def vehicle_facets(session: AsyncSession = Depends(get_session)) -> FacetsResponse:
    """Filter values for the catalog dropdowns."""
    return FacetsResponse(**await catalog.list_facets(session))


@app.get("/vehicles/{vehicle_id}", response_model=VehicleDTO)
async def get_vehicle(
    vehicle_id: int,
    session: AsyncSession = Depends(get_session),
) -> VehicleDTO:
    """Vehicle detail page data."""
    vehicle = await catalog.get_vehicle(session, vehicle_id)
    return VehicleDTO.model_validate(vehicle)


# Catalog (admin)

@app.post(
    "/vehicles",
    response_model=VehicleDTO,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_vehicle(
    request: CreateVehicleRequest,
    session: AsyncSession = Depends(get_session),
) -> VehicleDTO:
    """Add a vehicle by hand."""
    try:
        vehicle = await catalog.create_vehicle(session, request.to_columns())
        return VehicleDTO.model_validate(vehicle)

    except CatalogError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating vehicle: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )


@app.put(
    "/vehicles/order",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def reorder_vehicles(
    request: ReorderRequest,
    session: AsyncSession = Depends(get_session),
) -> Response:
    """Persist the catalog display order."""
    await catalog.reorder_vehicles(session, request.ids)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.put(
    "/vehicles/{vehicle_id}",
    response_model=VehicleDTO,
    dependencies=[Depends(require_admin)],
)
async def update_vehicle(
    vehicle_id: int,
    request: UpdateVehicleRequest,
    session: AsyncSession = Depends(get_session),
) -> VehicleDTO:
    """Update the supplied fields of a vehicle."""
    try:
        vehicle = await catalog.update_vehicle(
            session,
            vehicle_id,
            request.to_columns(exclude_unset=True),
        )
        return VehicleDTO.model_validate(vehicle)

    except CatalogError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error updating vehicle {vehicle_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )


@app.delete(
    "/vehicles/{vehicle_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_vehicle(
    vehicle_id: int,
    session: AsyncSession = Depends(get_session),
    storage: StorageClient | None = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Delete a vehicle and its uploaded images."""
    await catalog.delete_vehicle(
        session,
        vehicle_id,
        storage=storage,
        uploads_bucket=settings.admin.uploads_bucket,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/vehicles/{vehicle_id}/archive",
    response_model=VehicleDTO,
    dependencies=[Depends(require_admin)],
)
async def toggle_archive(
    vehicle_id: int,
    session: AsyncSession = Depends(get_session),
) -> VehicleDTO:
    """Archive an active vehicle, or restore an archived one."""
    vehicle = await catalog.toggle_archived(session, vehicle_id)
    return VehicleDTO.model_validate(vehicle)


@app.post(
    "/vehicles/{vehicle_id}/sold",
    response_model=VehicleDTO,
    dependencies=[Depends(require_admin)],
)
async def toggle_sold(
    vehicle_id: int,
    session: AsyncSession = Depends(get_session),
) -> VehicleDTO:
    """Mark a vehicle sold, or put a sold vehicle back on sale."""
    vehicle = await catalog.toggle_sold(session, vehicle_id)
    return VehicleDTO.model_validate(vehicle)
