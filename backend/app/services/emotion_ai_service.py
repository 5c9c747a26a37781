"""
Emotion/Insight Extraction Service

Wraps the LLM for every judgement the product needs: per-answer emotion
scoring, conversation summaries, insights, the conversation review used for
quality metrics, and next-week projections. Provider failures never escape
this module; each call has a documented default set.
"""
import asyncio
import logging
import math
import random
from collections import Counter
from datetime import timedelta
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.errors import UpstreamError
from app.models.schemas import (
    AIPerformance,
    ConversationInsights,
    ConversationSummary,
    EmotionAnalysis,
    EmotionConversation,
    OverallEmotion,
    PredictedOutcomes,
    PredictiveInsights,
    utcnow,
)

logger = logging.getLogger(__name__)


def clamp_number(value: Any, low: float, high: float) -> Optional[float]:
    """Clamp a numeric-ish value into [low, high]; None when it isn't a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return max(low, min(high, number))


def as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, dict):
                # {"trigger": "deadline", "frequency": 2} style objects
                item = next((v for v in item.values() if isinstance(v, str)), None)
            if item is not None and str(item).strip():
                items.append(str(item))
        return items
    return []


def _alias(name: str, camel: str):
    return Field(default=None, validation_alias=AliasChoices(name, camel))


# ============================================================================
# LLM payload schemas
# ============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EmotionScorePayload(_Payload):
    """Emotional reading of one free-text answer."""
    primary_emotion: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("primary_emotion", "primaryEmotion"),
        description="joy, sadness, anger, fear, surprise, disgust, neutral, excitement, "
                    "frustration, anxiety, contentment or stress",
    )
    intensity: Optional[float] = Field(default=None, description="Emotional intensity, 1-10")
    confidence: Optional[float] = Field(default=None, description="Confidence in the reading, 0-1")
    triggers: List[str] = Field(default_factory=list, description="What caused the emotion")
    context: Optional[str] = Field(default=None, description="work, personal, team, ...")
    needs: List[str] = Field(default_factory=list, description="What the person needs emotionally")
    sentiment: Optional[float] = Field(default=None, description="Sentiment, -1 to 1")

    @field_validator("intensity", mode="before")
    @classmethod
    def _intensity(cls, v):
        return clamp_number(v, 1, 10)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return clamp_number(v, 0, 1)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, v):
        return clamp_number(v, -1, 1)

    @field_validator("triggers", "needs", mode="before")
    @classmethod
    def _lists(cls, v):
        return as_string_list(v)

    @field_validator("primary_emotion", "context", mode="before")
    @classmethod
    def _text(cls, v):
        return v.strip().lower() if isinstance(v, str) and v.strip() else None


class OverallEmotionPayload(_Payload):
    """Summary of the emotional state across a whole conversation."""
    dominant_emotion: Optional[str] = _alias("dominant_emotion", "dominantEmotion")
    average_intensity: Optional[float] = _alias("average_intensity", "averageIntensity")
    emotional_state: Optional[str] = _alias("emotional_state", "emotionalState")
    well_being_score: Optional[float] = _alias("well_being_score", "wellBeingScore")
    stress_level: Optional[float] = _alias("stress_level", "stressLevel")
    energy_level: Optional[float] = _alias("energy_level", "energyLevel")
    satisfaction: Optional[float] = None

    @field_validator(
        "average_intensity", "well_being_score", "stress_level", "energy_level", "satisfaction",
        mode="before",
    )
    @classmethod
    def _scores(cls, v):
        return clamp_number(v, 1, 10)

    @field_validator("dominant_emotion", "emotional_state", mode="before")
    @classmethod
    def _text(cls, v):
        return v.strip() if isinstance(v, str) and v.strip() else None


class InsightsPayload(_Payload):
    """Patterns, concerns, positives, recommendations and key topics of a conversation."""
    emotional_patterns: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("emotional_patterns", "emotionalPatterns")
    )
    concerns: List[str] = Field(default_factory=list)
    positive_factors: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("positive_factors", "positiveFactors")
    )
    recommendations: List[str] = Field(default_factory=list)
    key_topics: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("key_topics", "keyTopics")
    )

    @field_validator("*", mode="before")
    @classmethod
    def _lists(cls, v):
        return as_string_list(v)


class AIPerformancePayload(_Payload):
    response_relevance: Optional[float] = _alias("response_relevance", "responseRelevance")
    empathy_level: Optional[float] = _alias("empathy_level", "empathyLevel")
    question_quality: Optional[float] = _alias("question_quality", "questionQuality")
    contextual_awareness: Optional[float] = _alias("contextual_awareness", "contextualAwareness")
    helpfulness: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scores(cls, v):
        return clamp_number(v, 1, 10)


class SummaryPayload(_Payload):
    key_points: List[str] = Field(default_factory=list, validation_alias=AliasChoices("key_points", "keyPoints"))
    concerns: List[str] = Field(default_factory=list)
    positive_aspects: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("positive_aspects", "positiveAspects")
    )
    areas_for_improvement: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("areas_for_improvement", "areasForImprovement")
    )

    @field_validator("*", mode="before")
    @classmethod
    def _lists(cls, v):
        return as_string_list(v)


class ConversationReviewPayload(_Payload):
    """Review of a check-in transcript: how well the assistant did and what was said."""
    ai_performance: Optional[AIPerformancePayload] = _alias("ai_performance", "aiPerformance")
    summary: Optional[SummaryPayload] = None

    @field_validator("ai_performance", "summary", mode="before")
    @classmethod
    def _objects(cls, v):
        return v if isinstance(v, dict) else None


class PredictedOutcomesPayload(_Payload):
    next_week_mood: Optional[float] = _alias("next_week_mood", "nextWeekMood")
    next_week_stress: Optional[float] = _alias("next_week_stress", "nextWeekStress")
    next_week_energy: Optional[float] = _alias("next_week_energy", "nextWeekEnergy")
    confidence: Optional[float] = None

    @field_validator("next_week_mood", "next_week_stress", "next_week_energy", mode="before")
    @classmethod
    def _scores(cls, v):
        return clamp_number(v, 1, 10)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return clamp_number(v, 0, 1)


class PredictivePayload(_Payload):
    """Risks, opportunities and a projection of next week's mood, stress and energy."""
    risk_factors: List[str] = Field(default_factory=list, validation_alias=AliasChoices("risk_factors", "riskFactors"))
    improvement_areas: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("improvement_areas", "improvementAreas")
    )
    success_indicators: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("success_indicators", "successIndicators")
    )
    intervention_recommendations: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("intervention_recommendations", "interventionRecommendations"),
    )
    predicted_outcomes: Optional[PredictedOutcomesPayload] = _alias("predicted_outcomes", "predictedOutcomes")
    early_warning_signals: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("early_warning_signals", "earlyWarningSignals")
    )
    opportunity_areas: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("opportunity_areas", "opportunityAreas")
    )

    @field_validator("predicted_outcomes", mode="before")
    @classmethod
    def _outcomes(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator(
        "risk_factors", "improvement_areas", "success_indicators", "intervention_recommendations",
        "early_warning_signals", "opportunity_areas",
        mode="before",
    )
    @classmethod
    def _lists(cls, v):
        return as_string_list(v)


class ConversationReview(BaseModel):
    """What the aggregator takes from the LLM review (defaults when it failed)."""
    ai_performance: AIPerformance = Field(default_factory=AIPerformance)
    summary: ConversationSummary = Field(default_factory=ConversationSummary)
    reviewed: bool = False


# ============================================================================
# Question templates and fallback replies
# ============================================================================

QUESTION_TEMPLATES = {
    "daily": [
        "How are you feeling right now?",
        "What's the main emotion you're experiencing today?",
        "How would you rate your energy level today?",
        "What's making you feel this way?",
        "How do you feel about your work today?",
        "What emotion do you wish you felt more?",
        "How do you feel about your team today?",
        "What's your emotional state about your current projects?",
        "How do you feel about your role today?",
        "What emotion do you associate with success?",
        "How do you feel about feedback you've received?",
        "What's your emotional outlook for tomorrow?",
    ],
    "weekly": [
        "How has your emotional journey been this week?",
        "What was your highest emotional moment this week?",
        "What was your lowest emotional moment this week?",
        "How do you feel about your work-life balance this week?",
        "What emotions did you experience with your colleagues?",
        "How do you feel about your personal growth this week?",
        "What's your emotional outlook for next week?",
        "How supported do you feel by your team this week?",
        "What's one emotion you'd like to feel more of?",
        "How do you feel about your role in the company?",
        "What emotions do you associate with your workplace?",
        "How do you feel about change in the organization?",
        "What emotions do you want to cultivate?",
        "How do you feel about your work environment?",
        "What's your emotional vision for the future?",
    ],
    "monthly": [
        "Describe your emotional landscape this month",
        "What patterns do you notice in your emotions?",
        "How has your emotional resilience changed?",
        "What emotions do you associate with your workplace?",
        "How do you feel about your career progression?",
        "What emotional support do you need?",
        "How do you feel about the company culture?",
        "What's your emotional relationship with your manager?",
        "How do you feel about change in the organization?",
        "What emotions do you want to cultivate?",
        "How do you feel about your work environment?",
        "What's your emotional vision for the future?",
        "How do you feel about recognition and feedback?",
        "What emotions do you experience during meetings?",
        "How do you feel about your work impact?",
    ],
}

FALLBACK_RESPONSES = [
    "Thank you for sharing. How are you feeling right now?",
    "That's interesting. What's been on your mind lately?",
    "I understand. How has your day been so far?",
    "Thanks for telling me. What's making you feel this way?",
    "I appreciate you sharing. How are things at work?",
    "That sounds important. Can you tell me more about that?",
    "I hear you. What would help you feel better?",
    "Thank you for being open. How are you coping with this?",
    "That's valuable insight. What's your biggest concern right now?",
    "I'm listening. What else would you like to talk about?",
]

CHECK_IN_PERSONA = """You are Cuby, a supportive assistant running an emotional check-in conversation.
Be empathetic, show genuine interest in the person's feelings, and ask a natural follow-up
about something specific they shared. Build on the conversation so far, avoid repeating
questions, and keep the reply to one or two sentences."""


def _answers_text(conversation: EmotionConversation) -> str:
    return "\n".join(f"- {q.user_response}" for q in conversation.questions)


def _top(counter: Counter, limit: int = 5) -> List[tuple]:
    # Counter.most_common keeps insertion order for equal counts
    return counter.most_common(limit)


class EmotionAIService:
    """LLM-backed emotion scoring, summaries and projections with neutral fallbacks."""

    def __init__(self, llm):
        self.llm = llm

    async def _structured(self, call_site: str, messages: list, response_model, **kwargs):
        """Run a structured LLM call off the event loop; None on provider failure."""
        try:
            return await asyncio.to_thread(self.llm.structured_output, messages, response_model, **kwargs)
        except UpstreamError as e:
            logger.warning(f"⚠️ {call_site} fell back to defaults: {e}")
            return None

    async def score_response(self, text: str, context: str = "workplace") -> EmotionAnalysis:
        """Score one answer. Missing or unusable fields take the neutral defaults."""
        payload = await self._structured(
            "score_response",
            [
                {"role": "system", "content": "You are an expert emotion analyst. Analyze the emotional "
                                              "content of the user's text and respond with JSON."},
                {"role": "user", "content": f'Text: "{text}"\nContext: {context}'},
            ],
            EmotionScorePayload,
            temperature=0.3,
            max_tokens=500,
        )
        if payload is None:
            return EmotionAnalysis(context=context)

        return EmotionAnalysis(
            primary_emotion=payload.primary_emotion or "neutral",
            intensity=payload.intensity if payload.intensity is not None else 5,
            confidence=payload.confidence if payload.confidence is not None else 0.3,
            triggers=payload.triggers,
            context=payload.context or context,
            needs=payload.needs,
            sentiment=payload.sentiment if payload.sentiment is not None else 0,
            intensity_scored=payload.intensity is not None,
            sentiment_scored=payload.sentiment is not None,
        )

    async def summarize_conversation(self, conversation: EmotionConversation) -> OverallEmotion:
        if not conversation.questions:
            return OverallEmotion()

        payload = await self._structured(
            "summarize_conversation",
            [
                {"role": "system", "content": "Summarize the emotional state expressed across all of "
                                              "these check-in answers. Scores use a 1-10 scale."},
                {"role": "user", "content": f"Answers:\n{_answers_text(conversation)}"},
            ],
            OverallEmotionPayload,
            temperature=0.3,
            max_tokens=300,
        )
        if payload is None:
            return OverallEmotion()

        defaults = OverallEmotion()
        values = payload.model_dump(exclude_none=True)
        return defaults.model_copy(update=values)

    async def derive_insights(self, conversation: EmotionConversation) -> ConversationInsights:
        if not conversation.questions:
            return ConversationInsights()

        payload = await self._structured(
            "derive_insights",
            [
                {"role": "system", "content": "Read these check-in answers and list the emotional "
                                              "patterns, concerns, positive factors, recommendations to "
                                              "improve well-being, and the key topics discussed."},
                {"role": "user", "content": f"Answers:\n{_answers_text(conversation)}"},
            ],
            InsightsPayload,
            temperature=0.7,
            max_tokens=500,
        )
        if payload is None:
            return ConversationInsights()
        return ConversationInsights(**payload.model_dump())

    async def review_conversation(self, transcript: str) -> ConversationReview:
        payload = await self._structured(
            "review_conversation",
            [
                {"role": "system", "content": "Review this check-in conversation. Rate the assistant's "
                                              "response relevance, empathy, question quality, contextual "
                                              "awareness and helpfulness (1-10) and summarize key points, "
                                              "concerns, positive aspects and areas for improvement."},
                {"role": "user", "content": f"Conversation:\n{transcript}"},
            ],
            ConversationReviewPayload,
            temperature=0.3,
            max_tokens=1000,
        )
        if payload is None:
            return ConversationReview()

        performance = AIPerformance()
        if payload.ai_performance is not None:
            performance = performance.model_copy(update=payload.ai_performance.model_dump(exclude_none=True))
        summary = ConversationSummary()
        if payload.summary is not None:
            summary = ConversationSummary(**payload.summary.model_dump())
        return ConversationReview(ai_performance=performance, summary=summary, reviewed=True)

    async def predict_outcomes(self, conversation_data: dict, historical: dict) -> PredictiveInsights:
        payload = await self._structured(
            "predict_outcomes",
            [
                {"role": "system", "content": "From this conversation data and history, list risk "
                                              "factors, improvement areas, success indicators, "
                                              "intervention recommendations, early warning signals and "
                                              "opportunity areas, and project next week's mood, stress "
                                              "and energy (1-10) with a confidence (0-1)."},
                {"role": "user", "content": f"Conversation Data: {conversation_data}\n"
                                            f"Historical Analysis: {historical}"},
            ],
            PredictivePayload,
            temperature=0.3,
            max_tokens=800,
        )
        if payload is None:
            return PredictiveInsights()

        outcomes = PredictedOutcomes()
        if payload.predicted_outcomes is not None:
            outcomes = outcomes.model_copy(update=payload.predicted_outcomes.model_dump(exclude_none=True))
        values = payload.model_dump(exclude={"predicted_outcomes"})
        return PredictiveInsights(**values, predicted_outcomes=outcomes)

    def generate_questions(self, conversation_type: str = "daily") -> List[str]:
        return list(QUESTION_TEMPLATES.get(conversation_type, QUESTION_TEMPLATES["daily"]))

    async def generate_conversational_response(self, context: str) -> str:
        messages = [
            {"role": "system", "content": CHECK_IN_PERSONA},
            {"role": "user", "content": f"Here is our conversation so far:\n\n{context}\n\n"
                                        "Respond naturally to my latest message."},
        ]
        try:
            reply = await asyncio.to_thread(self.llm.chat_completion, messages, 0.8, 150)
            return reply.strip()
        except UpstreamError as e:
            logger.warning(f"⚠️ generate_conversational_response fell back to a canned reply: {e}")
            return random.choice(FALLBACK_RESPONSES)

    async def track_emotional_patterns(self, db, tenant_id: str, user_id: str, days: int = 30) -> dict:
        """Dominant emotions, triggers and needs across a user's completed conversations."""
        since = utcnow() - timedelta(days=days)
        conversations = db.list_user_conversations(tenant_id, user_id, since=since, status="completed")
        # Oldest first so the mood series reads left to right
        conversations = sorted(conversations, key=lambda c: c.created_at)

        emotions: Counter = Counter()
        triggers: Counter = Counter()
        needs: Counter = Counter()
        series = []
        for conv in conversations:
            overall = conv.overall_emotion or OverallEmotion()
            emotions[overall.dominant_emotion] += 1
            series.append({
                "date": conv.created_at.isoformat(),
                "mood": overall.well_being_score,
                "stress": overall.stress_level,
                "energy": overall.energy_level,
            })
            for q in conv.questions:
                triggers.update(q.emotion_analysis.triggers)
                needs.update(q.emotion_analysis.needs)

        return {
            "dominant_emotions": [{"emotion": e, "count": c} for e, c in _top(emotions)],
            "emotional_trends": series,
            "emotional_triggers": [{"trigger": t, "count": c} for t, c in _top(triggers)],
            "emotional_needs": [{"need": n, "count": c} for n, c in _top(needs)],
        }
