"""
Emotion Analytics Routes
Tenant dashboards over the per-completion emotion snapshots.
"""
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.dependencies import Services, get_services, get_time_window
from app.middleware.auth import ensure_self_or_admin, get_current_user, require_permission
from app.middleware.security import validate_uuid
from app.models.schemas import User, utcnow
from app.services.dashboard_service import TimeWindow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/emotion-analytics", tags=["emotion-analytics"])


class ReportRequest(BaseModel):
    time_range: str = "30d"
    report_type: str = "comprehensive"


@router.get("/overview")
async def get_overview(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"overview": services.dashboard.emotion_overview(current_user.tenant_id, window)}


@router.get("/trends")
async def get_trends(
    granularity: str = Query(default="daily"),
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"trends": services.dashboard.emotion_trends(current_user.tenant_id, window, granularity)}


@router.get("/heatmap")
async def get_heatmap(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(require_permission("view_analytics")),
    services: Services = Depends(get_services),
):
    return {"heatmap": services.dashboard.emotion_heatmap(current_user.tenant_id, window)}


@router.get("/insights")
async def get_insights(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"insights": services.dashboard.emotion_insights(current_user.tenant_id, window)}


@router.get("/user/{user_id}")
async def get_user_analytics(
    user_id: str,
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    validate_uuid(user_id, "user_id")
    ensure_self_or_admin(current_user, user_id, "emotion analytics")

    result = services.dashboard.user_emotion_analytics(current_user.tenant_id, user_id, window)
    days = max(1, (utcnow() - window.start).days)
    result["patterns"] = await services.emotion_ai.track_emotional_patterns(
        services.db, current_user.tenant_id, user_id, days
    )
    return result


@router.post("/generate-report")
async def generate_report(
    request: ReportRequest,
    current_user: User = Depends(require_permission("view_analytics")),
    services: Services = Depends(get_services),
):
    window = TimeWindow.parse(request.time_range)
    logger.info(f"📊 Generating {request.report_type} report for tenant {current_user.tenant_id}")
    report = services.dashboard.generate_report(current_user.tenant_id, window, request.report_type)
    return {"report": report}


@router.get("/departments")
async def get_departments(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(require_permission("view_analytics")),
    services: Services = Depends(get_services),
):
    return {"departments": services.dashboard.departments(current_user.tenant_id, window)}


@router.get("/organization")
async def get_organization(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(require_permission("view_analytics")),
    services: Services = Depends(get_services),
):
    return {"organization": services.dashboard.organization(current_user.tenant_id, window)}
