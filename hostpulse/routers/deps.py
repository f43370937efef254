# hostpulse/routers/deps.py

from fastapi import HTTPException, Request

from hostpulse.internal.service import MonitoringService


def get_service(request: Request) -> MonitoringService:
    """
    Dependency function to get the monitoring service.
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Monitoring service not ready")
    return service
