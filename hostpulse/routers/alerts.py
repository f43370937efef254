# hostpulse/routers/alerts.py

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from hostpulse.internal.errors import ConfigurationError, StorageError
from hostpulse.internal.service import DEFAULT_ALERT_LIMIT, MonitoringService
from hostpulse.models.alerts import AlertRecord, AlertThreshold
from hostpulse.routers.deps import get_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/targets/{target}/alerts")
async def get_recent_alerts(
    target: str,
    limit: int = Query(DEFAULT_ALERT_LIMIT, ge=1, le=500),
    service: MonitoringService = Depends(get_service),
) -> list[AlertRecord]:
    """Most recent alerts for a target, newest first."""
    try:
        return await service.get_recent_alerts(target, limit)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=f"Failed to load alerts: {e}")


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: int, service: MonitoringService = Depends(get_service)):
    try:
        await service.acknowledge_alert(alert_id)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=f"Failed to acknowledge alert: {e}")
    return {"message": "Alert acknowledged", "id": alert_id}


@router.get("/thresholds")
async def get_thresholds(service: MonitoringService = Depends(get_service)) -> list[AlertThreshold]:
    return service.get_thresholds()


@router.put("/thresholds")
async def set_thresholds(
    thresholds: list[dict],
    service: MonitoringService = Depends(get_service),
) -> list[AlertThreshold]:
    """
    Replaces the whole threshold list. The body is validated here rather
    than by FastAPI so that unknown alert types come back as a 400 with the
    offending entry named.
    """
    try:
        return service.set_thresholds(thresholds)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
