"""
Emotion Conversation Routes
Start a check-in, answer questions, complete or abandon it, and read history.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from app.dependencies import Services, get_services, get_time_window
from app.errors import ConflictError, NotFoundError
from app.middleware.auth import ensure_self_or_admin, get_current_user
from app.middleware.security import validate_uuid
from app.models.schemas import (
    ContextualFactors,
    ConversationType,
    EmotionConversation,
    QuestionEntry,
    User,
    to_document,
    utcnow,
)
from app.services.dashboard_service import TimeWindow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/emotion-conversations", tags=["emotion-conversations"])


class StartConversationRequest(BaseModel):
    conversation_type: ConversationType = "daily"
    questions: Optional[List[str]] = None
    contextual_factors: Optional[ContextualFactors] = None


class RespondRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    question_id: str = Field(min_length=1)
    question_text: str = Field(min_length=1)
    user_response: str = Field(min_length=1, max_length=5000)


class GenerateResponseRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    conversation_context: str = Field(min_length=1, max_length=20000)


def _open_conversation(services: Services, current_user: User, session_id: str) -> EmotionConversation:
    """The caller's in-progress conversation for this session, or 404."""
    validate_uuid(session_id, "session_id")
    conversation = services.db.get_conversation_by_session(current_user.tenant_id, session_id, status="in_progress")
    if conversation is None or conversation.user_id != current_user.id:
        raise NotFoundError(
            "The conversation session does not exist or has ended", error="Conversation not found"
        )
    return conversation


@router.post("/start", status_code=201)
async def start_conversation(
    request: StartConversationRequest,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Open a new check-in and hand back the questions to ask"""
    questions = request.questions or services.emotion_ai.generate_questions(request.conversation_type)

    conversation = services.db.create_conversation(EmotionConversation(
        tenant_id=current_user.tenant_id,
        user_id=current_user.id,
        conversation_type=request.conversation_type,
        contextual_factors=request.contextual_factors,
    ))
    logger.info(f"✅ Started {conversation.conversation_type} conversation {conversation.id} for {current_user.id}")

    return {
        "message": "Emotion conversation started",
        "session_id": conversation.session_id,
        "questions": questions,
        "conversation_id": conversation.id,
    }


@router.post("/generate-response")
async def generate_response(
    request: GenerateResponseRequest,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Supportive follow-up for the conversation so far"""
    reply = await services.emotion_ai.generate_conversational_response(request.conversation_context)
    return {"response": reply, "timestamp": utcnow().isoformat()}


@router.get("/history")
async def get_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    conversation_type: Optional[ConversationType] = Query(default=None, alias="conversationType"),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    conversations, total = services.db.get_conversation_history(
        current_user.tenant_id, current_user.id, limit=limit, offset=(page - 1) * limit,
        conversation_type=conversation_type,
    )
    return {
        "conversations": [
            {
                "session_id": c.session_id,
                "conversation_type": c.conversation_type,
                "overall_emotion": to_document(c.overall_emotion) if c.overall_emotion else None,
                "insights": to_document(c.insights) if c.insights else None,
                "created_at": c.created_at.isoformat(),
                "completed_at": c.completed_at.isoformat() if c.completed_at else None,
            }
            for c in conversations
        ],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
    }


@router.get("/patterns/{user_id}")
async def get_patterns(
    user_id: str,
    window: TimeWindow = Depends(get_time_window),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    validate_uuid(user_id, "user_id")
    ensure_self_or_admin(current_user, user_id, "emotion patterns")
    days = max(1, (utcnow() - window.start).days)
    patterns = await services.emotion_ai.track_emotional_patterns(
        services.db, current_user.tenant_id, user_id, days
    )
    return {"patterns": patterns}


@router.post("/{session_id}/respond")
async def respond(
    session_id: str,
    request: RespondRequest,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Score one answer and append it to the conversation"""
    _open_conversation(services, current_user, session_id)

    analysis = await services.emotion_ai.score_response(request.user_response, "workplace")
    updated = services.db.append_question(current_user.tenant_id, session_id, QuestionEntry(
        question_id=request.question_id,
        question_text=request.question_text,
        user_response=request.user_response,
        emotion_analysis=analysis,
    ))
    if updated is None:
        raise NotFoundError(
            "The conversation session does not exist or has ended", error="Conversation not found"
        )

    return {
        "message": "Emotion response recorded",
        "emotion_analysis": to_document(analysis),
        "question_count": len(updated.questions),
    }


@router.post("/{session_id}/complete")
async def complete(
    session_id: str,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Summarize and close the conversation, then record its analytics.
    A session can be completed once; a concurrent second attempt gets 409.
    """
    conversation = _open_conversation(services, current_user, session_id)

    overall_emotion = await services.emotion_ai.summarize_conversation(conversation)
    insights = await services.emotion_ai.derive_insights(conversation)

    completed = services.db.complete_conversation(
        current_user.tenant_id, session_id, overall_emotion, insights
    )
    if completed is None:
        logger.warning(f"⚠️ Conversation {conversation.id} was completed by another request")
        raise ConflictError("This conversation has already been completed")

    snapshot = services.analytics.record_completion_snapshot(completed)
    rollup = await services.analytics.analyze_completed(completed)
    logger.info(f"✅ Completed conversation {completed.id}")

    return {
        "message": "Emotion conversation completed",
        "overall_emotion": to_document(overall_emotion),
        "insights": to_document(insights),
        "analytics_id": snapshot.id,
        "conversation_analytics_id": rollup.id,
    }


@router.post("/{session_id}/abandon")
async def abandon(
    session_id: str,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    _open_conversation(services, current_user, session_id)
    abandoned = services.db.abandon_conversation(current_user.tenant_id, session_id)
    if abandoned is None:
        raise NotFoundError(
            "The conversation session does not exist or has ended", error="Conversation not found"
        )
    return {"message": "Emotion conversation abandoned", "session_id": session_id}


@router.get("/{session_id}")
async def get_conversation(
    session_id: str,
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    validate_uuid(session_id, "session_id")
    conversation = services.db.get_conversation_by_session(current_user.tenant_id, session_id)
    if conversation is None or conversation.user_id != current_user.id:
        raise NotFoundError("The conversation session does not exist", error="Conversation not found")
    return {"conversation": to_document(conversation)}
