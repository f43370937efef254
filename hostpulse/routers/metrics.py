# hostpulse/routers/metrics.py

"""
Router for metrics endpoints.
Handles history queries, target listing, live samples and process lists.
"""

import logging
import platform
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from hostpulse.internal.errors import (
    DiscoveryError,
    StorageError,
    TransientCollectionError,
    UnknownTargetError,
)
from hostpulse.internal.providers.local import LocalHostProvider
from hostpulse.internal.service import MonitoringService
from hostpulse.internal.utils.timeutil import ensure_utc
from hostpulse.models.metrics import HistoryResponse, ProcessInfo, Sample
from hostpulse.models.targets import TargetInfo
from hostpulse.routers.deps import get_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/targets")
async def list_targets(service: MonitoringService = Depends(get_service)) -> list[TargetInfo]:
    try:
        return await service.list_targets()
    except DiscoveryError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/targets/{target}/history")
async def get_history(
    target: str,
    start: datetime = Query(..., alias="from"),
    end: datetime = Query(..., alias="to"),
    service: MonitoringService = Depends(get_service),
) -> HistoryResponse:
    """
    Metrics history for a target. Ranges up to one hour are served from
    raw samples, longer ranges from 1-minute buckets.
    """
    try:
        return await service.get_history(target, ensure_utc(start), ensure_utc(end))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.warning(f"History query for {target} failed: {e}")
        raise HTTPException(status_code=503, detail=f"Failed to load history: {e}")


@router.get("/targets/{target}/metrics")
async def get_system_metrics(target: str, service: MonitoringService = Depends(get_service)) -> Sample:
    """A live sample of any configured target. Not stored."""
    try:
        return await service.get_system_metrics(target)
    except UnknownTargetError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientCollectionError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/targets/{target}/processes")
async def get_processes(target: str, service: MonitoringService = Depends(get_service)) -> list[ProcessInfo]:
    try:
        return await service.get_processes(target)
    except UnknownTargetError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientCollectionError as e:
        raise HTTPException(status_code=502, detail=str(e))


# --- This machine, polled by other hostpulse instances ---

def _local_provider(request: Request) -> LocalHostProvider:
    provider = getattr(request.app.state, "local_provider", None)
    if provider is None:
        provider = LocalHostProvider()
        request.app.state.local_provider = provider
    return provider


@router.get("/sample")
async def get_local_sample(request: Request) -> Sample:
    """
    A fresh sample of this machine. Other hostpulse instances poll this
    endpoint when they monitor this host as an 'http' target.
    """
    try:
        return await _local_provider(request).sample(platform.node() or "localhost")
    except Exception as e:
        logger.warning(f"Local sample failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to collect sample: {e}")


@router.get("/processes")
async def get_local_processes(request: Request) -> list[ProcessInfo]:
    try:
        return await _local_provider(request).processes(platform.node() or "localhost")
    except Exception as e:
        logger.warning(f"Local process listing failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list processes: {e}")
