"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.schemas import DeviceSummaryRow, ReadingCreate, ReadingOut, RollupRow
from auth.rights import AuthenticationError, AuthorizationError, UserRights
from auth.tokens import Claims, IdentityVerifier, build_default_authenticator
from services.telemetry import TelemetryService, build_default_service

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service() -> TelemetryService:
    return build_default_service()


def get_verifier() -> IdentityVerifier:
    return build_default_authenticator()


def require_claims(
    request: Request,
    verifier: IdentityVerifier = Depends(get_verifier),
) -> Claims:
    claims = verifier.verify_request(request)
    if claims is None or not claims.user_id:
        logger.warning("User not authenticated", extra={"path": request.url.path})
        raise AuthenticationError(request.url.path)
    return claims


@router.get(
    "/api/v1/sensors/hourly",
    response_model=List[RollupRow],
    response_model_exclude_none=True,
    summary="Hourly averages of the caller's readings over the trailing window.",
)
def get_hourly_rollup(
    metrics: Optional[List[str]] = Query(
        None,
        description="Metrics to include; repeat the parameter. Omit for all metrics.",
    ),
    claims: Claims = Depends(require_claims),
    service: TelemetryService = Depends(get_service),
) -> List[RollupRow]:
    rows = service.run_single_metric(claims.user_id, metrics)
    return [RollupRow.from_rollup(row) for row in rows]


@router.get(
    "/api/v1/sensors/latest",
    response_model=List[DeviceSummaryRow],
    response_model_exclude_none=True,
    summary="Latest reading and hourly history for each of the caller's devices.",
)
def get_device_summary(
    claims: Claims = Depends(require_claims),
    service: TelemetryService = Depends(get_service),
) -> List[DeviceSummaryRow]:
    rows = service.run_cross_device_summary(claims.user_id)
    return [DeviceSummaryRow.from_summary(row) for row in rows]


@router.get(
    "/api/v1/data",
    response_model=List[ReadingOut],
    response_model_exclude_none=True,
    summary="Most recent raw readings of the caller, newest first.",
)
def get_recent_readings(
    limit: int = Query(25, ge=1, le=100),
    claims: Claims = Depends(require_claims),
    service: TelemetryService = Depends(get_service),
) -> List[ReadingOut]:
    readings = service.recent_readings(claims.user_id, limit)
    return [ReadingOut.from_reading(reading) for reading in readings]


@router.post(
    "/api/v1/data",
    response_model=ReadingOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Store a reading for the calling device.",
)
def create_reading(
    payload: ReadingCreate,
    claims: Claims = Depends(require_claims),
    verifier: IdentityVerifier = Depends(get_verifier),
    service: TelemetryService = Depends(get_service),
) -> ReadingOut:
    if not verifier.is_entitled(claims, UserRights.create_data_point):
        logger.warning("User not authorized", extra={"user_id": claims.user_id})
        raise AuthorizationError(UserRights.create_data_point.value)
    if not claims.device_id:
        logger.warning("Claim carries no device", extra={"user_id": claims.user_id})
        raise AuthorizationError("device claim required")

    reading = service.ingest_reading(claims.user_id, claims.device_id, payload.metric_values())
    return ReadingOut.from_reading(reading)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
