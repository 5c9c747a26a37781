"""
Conversation Analytics Routes
Dashboards over the stored per-conversation analytics rollups.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import Services, get_services, get_time_window
from app.middleware.auth import ensure_self_or_admin, get_current_user
from app.middleware.security import validate_uuid
from app.models.schemas import ConversationType, User, to_document
from app.services.dashboard_service import TimeWindow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversation-analytics", tags=["conversation-analytics"])


@router.get("/dashboard")
async def get_dashboard(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Tenant-wide aggregate over the window"""
    return {"success": True, "data": services.dashboard.get_dashboard(current_user.tenant_id, window)}


@router.get("/conversations")
async def list_conversations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    conversation_type: Optional[ConversationType] = Query(default=None, alias="conversationType"),
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    # Non-admins only ever see their own records
    if current_user.role != "admin":
        user_id = current_user.id
    elif user_id:
        validate_uuid(user_id, "userId")

    data = services.dashboard.list_conversations(
        current_user.tenant_id, window=window, user_id=user_id,
        conversation_type=conversation_type, page=page, limit=limit,
    )
    return {"success": True, "data": data}


@router.get("/user/{user_id}")
async def get_user_analytics(
    user_id: str,
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    validate_uuid(user_id, "user_id")
    ensure_self_or_admin(current_user, user_id)
    return {"success": True, "data": services.dashboard.user_analytics(current_user.tenant_id, user_id, window)}


@router.get("/trends")
async def get_trends(
    granularity: str = Query(default="daily"),
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    trends = services.dashboard.trends(current_user.tenant_id, window, granularity)
    return {"success": True, "data": {"trends": trends, "granularity": granularity}}


@router.get("/topics")
async def get_topics(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"success": True, "data": {"topics": services.dashboard.topics(current_user.tenant_id, window)}}


@router.get("/recommendations")
async def get_recommendations(
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    recommendations = services.dashboard.recommendations(current_user.tenant_id, window)
    return {"success": True, "data": {"recommendations": recommendations}}


@router.get("/filters")
async def get_filters(
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"success": True, "data": services.dashboard.get_filters(current_user.tenant_id)}


@router.post("/analyze/{conversation_id}")
async def analyze_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Analyze a completed conversation; repeated calls return the stored record"""
    validate_uuid(conversation_id, "conversation_id")
    record = await services.analytics.analyze_conversation(
        current_user.tenant_id, conversation_id, requested_by=current_user
    )
    logger.info(f"📊 Analytics {record.id} served for conversation {conversation_id}")
    return {"success": True, "data": to_document(record)}
