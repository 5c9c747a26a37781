"""
Pure calculators for the conversation analytics rollup.

Nothing here touches the database or the LLM; every function maps its inputs
to a value, so the same conversation always produces the same numbers.
"""
from collections import Counter, OrderedDict
from datetime import datetime, timedelta
from statistics import mean, pstdev, pvariance
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.schemas import (
    ContextualAnalysis,
    ContextualFactors,
    ConversationInsights,
    ConversationMetrics,
    EffectivenessMetrics,
    EmotionAnalysis,
    EmotionalInsightSummary,
    EmotionConversation,
    EmotionFrequency,
    EngagementMetrics,
    InteractionAnalysis,
    NeedFrequency,
    OverallEmotion,
    QualityMetrics,
    Recommendation,
    ResponsePatterns,
    TopicCount,
    TrendDirection,
    TriggerFrequency,
)
from app.services.placeholder_heuristics import PlaceholderHeuristics

TOPIC_KEYWORDS = OrderedDict([
    ("work", ["work", "job", "office", "meeting", "project", "deadline", "manager", "colleague"]),
    ("stress", ["stress", "stressed", "overwhelmed", "pressure", "anxiety", "worried"]),
    ("relationships", ["relationship", "family", "friend", "partner", "team", "social"]),
    ("health", ["health", "sick", "tired", "energy", "sleep", "exercise", "wellness"]),
    ("goals", ["goal", "future", "career", "plan", "dream", "aspiration", "ambition"]),
])

DAYS_OF_WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

TREND_THRESHOLD = 0.5


class Message(BaseModel):
    type: str  # "ai" or "user"
    content: str
    timestamp: datetime
    emotion_analysis: Optional[EmotionAnalysis] = None


class ConversationData(BaseModel):
    """Flattened view of a conversation: alternating ai/user turns plus timing."""
    messages: List[Message] = Field(default_factory=list)
    response_times: List[float] = Field(default_factory=list)
    total_duration: float = 0
    conversation_type: str = "daily"
    overall_emotion: Optional[OverallEmotion] = None
    insights: Optional[ConversationInsights] = None

    @property
    def user_messages(self) -> List[Message]:
        return [m for m in self.messages if m.type == "user"]

    @property
    def ai_messages(self) -> List[Message]:
        return [m for m in self.messages if m.type == "ai"]

    def transcript(self) -> str:
        return "\n".join(
            f"{'AI' if m.type == 'ai' else 'User'}: {m.content}" for m in self.messages
        )


def extract_conversation_data(conversation: EmotionConversation) -> ConversationData:
    messages = []
    response_times = []
    previous = None
    for question in conversation.questions:
        messages.append(Message(type="ai", content=question.question_text, timestamp=question.timestamp))
        messages.append(Message(
            type="user",
            content=question.user_response,
            timestamp=question.timestamp,
            emotion_analysis=question.emotion_analysis,
        ))
        if previous is not None:
            response_times.append(max(0.0, (question.timestamp - previous).total_seconds()))
        previous = question.timestamp

    total_duration = 0.0
    if conversation.questions:
        end = conversation.completed_at or conversation.questions[-1].timestamp
        total_duration = max(0.0, (end - conversation.created_at).total_seconds())

    return ConversationData(
        messages=messages,
        response_times=response_times,
        total_duration=total_duration,
        conversation_type=conversation.conversation_type,
        overall_emotion=conversation.overall_emotion,
        insights=conversation.insights,
    )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _overall(data: ConversationData) -> OverallEmotion:
    return data.overall_emotion or OverallEmotion()


# ============================================================================
# Metrics
# ============================================================================

def calculate_metrics(data: ConversationData) -> ConversationMetrics:
    """Counts, timing and averages.

    Sentiment and intensity are averaged only over answers the provider
    actually scored; a conversation with none gets 0 and 5.
    """
    answers = [m.emotion_analysis for m in data.user_messages if m.emotion_analysis]
    sentiments = [a.sentiment for a in answers if a.sentiment_scored]
    intensities = [a.intensity for a in answers if a.intensity_scored]
    overall = _overall(data)

    return ConversationMetrics(
        total_messages=len(data.messages),
        user_messages=len(data.user_messages),
        ai_messages=len(data.ai_messages),
        conversation_duration=data.total_duration,
        average_response_time=mean(data.response_times) if data.response_times else 0,
        sentiment_score=mean(sentiments) if sentiments else 0,
        emotional_intensity=mean(intensities) if intensities else 5,
        well_being_score=overall.well_being_score,
        stress_level=overall.stress_level,
        energy_level=overall.energy_level,
        satisfaction_level=overall.satisfaction,
    )


def analyze_emotional_content(data: ConversationData, limit: int = 5) -> EmotionalInsightSummary:
    """Top emotions, triggers and needs, most frequent first (ties keep first-seen order)."""
    emotions: Counter = Counter()
    triggers: Counter = Counter()
    needs: Counter = Counter()
    emotion_intensity: Dict[str, List[float]] = {}
    trigger_intensity: Dict[str, List[float]] = {}
    need_intensity: Dict[str, List[float]] = {}

    for message in data.user_messages:
        analysis = message.emotion_analysis
        if analysis is None:
            continue
        if analysis.primary_emotion:
            emotions[analysis.primary_emotion] += 1
            emotion_intensity.setdefault(analysis.primary_emotion, []).append(analysis.intensity)
        for trigger in analysis.triggers:
            triggers[trigger] += 1
            trigger_intensity.setdefault(trigger, []).append(analysis.intensity)
        for need in analysis.needs:
            needs[need] += 1
            need_intensity.setdefault(need, []).append(analysis.intensity)

    return EmotionalInsightSummary(
        dominant_emotions=[
            EmotionFrequency(emotion=e, frequency=n, intensity=mean(emotion_intensity[e]))
            for e, n in emotions.most_common(limit)
        ],
        emotional_triggers=[
            TriggerFrequency(trigger=t, frequency=n, impact=mean(trigger_intensity[t]))
            for t, n in triggers.most_common(limit)
        ],
        emotional_needs=[
            NeedFrequency(need=k, frequency=n, priority=mean(need_intensity[k]))
            for k, n in needs.most_common(limit)
        ],
        mood_patterns=[],
    )


def analyze_topics(data: ConversationData) -> List[TopicCount]:
    """Keyword topic counts over user turns.

    Each keyword found in a turn (case-insensitive substring) adds one to its
    topic, so "deadline meeting stress" counts work twice and stress once.
    """
    counts: Counter = Counter()
    matched: Dict[str, List[str]] = {}
    sentiments: Dict[str, List[float]] = {}

    for message in data.user_messages:
        content = message.content.lower()
        for topic, keywords in TOPIC_KEYWORDS.items():
            hits = [k for k in keywords if k in content]
            if not hits:
                continue
            counts[topic] += len(hits)
            seen = matched.setdefault(topic, [])
            seen.extend(k for k in hits if k not in seen)
            analysis = message.emotion_analysis
            if analysis is not None and analysis.sentiment_scored:
                sentiments.setdefault(topic, []).append(analysis.sentiment)

    return [
        TopicCount(
            topic=topic,
            frequency=frequency,
            sentiment=mean(sentiments[topic]) if sentiments.get(topic) else 0,
            keywords=matched[topic],
        )
        for topic, frequency in counts.most_common()
    ]


def calculate_quality_metrics(
    data: ConversationData,
    helpfulness: Optional[float],
    heuristics: PlaceholderHeuristics,
) -> QualityMetrics:
    answers = data.user_messages
    avg_length = mean(len(m.content) for m in answers) if answers else 0
    return QualityMetrics(
        engagement=_clamp(avg_length / 10, 1, 10),
        openness=_clamp(len(answers) * 2, 1, 10),
        trust=heuristics.quality_trust(data),
        satisfaction=_overall(data).satisfaction,
        helpfulness=helpfulness if helpfulness is not None else heuristics.helpfulness_fallback(),
    )


def generate_recommendations(data: ConversationData, topics: List[TopicCount]) -> List[Recommendation]:
    """Rule-based recommendations, always in rule order."""
    overall = _overall(data)
    recommendations = []

    if overall.stress_level > 7:
        recommendations.append(Recommendation(
            type="emotional_support",
            priority="high",
            description="High stress levels detected. Consider stress management techniques.",
        ))

    if overall.well_being_score < 4:
        recommendations.append(Recommendation(
            type="personal_development",
            priority="high",
            description="Low well-being score. Focus on self-care and positive activities.",
        ))

    if any(t.topic == "work" and t.frequency > 3 for t in topics):
        recommendations.append(Recommendation(
            type="workplace_improvement",
            priority="medium",
            description="Work-related concerns identified. Consider workplace support resources.",
        ))

    return recommendations


# ============================================================================
# Context
# ============================================================================

def time_of_day(moment: datetime) -> str:
    if moment.hour < 6:
        return "night"
    if moment.hour < 12:
        return "morning"
    if moment.hour < 18:
        return "afternoon"
    return "evening"


def day_of_week(moment: datetime) -> str:
    return DAYS_OF_WEEK[moment.weekday()]


def season(moment: datetime) -> str:
    """Three-month buckets: Jan-Mar winter, Apr-Jun spring, Jul-Sep summer, Oct-Dec autumn."""
    return ["winter", "spring", "summer", "autumn"][(moment.month - 1) // 3]


def environmental_impact(factors: ContextualFactors) -> float:
    impact = 0
    if factors.workload is not None and factors.workload > 7:
        impact -= 2
    if factors.weather == "sunny":
        impact += 1
    if factors.location == "home":
        impact += 1
    return _clamp(impact, -5, 5)


def environmental_stressors(factors: ContextualFactors) -> List[str]:
    stressors = []
    if factors.workload is not None and factors.workload > 7:
        stressors.append("high_workload")
    if factors.weather == "stormy":
        stressors.append("bad_weather")
    if factors.location == "office":
        stressors.append("work_environment")
    return stressors


def environmental_supports(factors: ContextualFactors) -> List[str]:
    supports = []
    if factors.weather == "sunny":
        supports.append("good_weather")
    if factors.location == "home":
        supports.append("comfortable_environment")
    return supports


def analyze_contextual_factors(conversation: EmotionConversation) -> ContextualAnalysis:
    factors = conversation.contextual_factors or ContextualFactors()
    moment = conversation.created_at
    return ContextualAnalysis(
        time_of_day=time_of_day(moment),
        day_of_week=day_of_week(moment),
        season=season(moment),
        external_events=list(factors.external_events),
        workload=factors.workload if factors.workload is not None else 5,
        weather=factors.weather or "unknown",
        location=factors.location or "unknown",
        device=factors.device or "unknown",
        impact_on_mood=environmental_impact(factors),
        environmental_stressors=environmental_stressors(factors),
        environmental_supports=environmental_supports(factors),
    )


# ============================================================================
# Interaction
# ============================================================================

def conversation_flow(question_count: int) -> str:
    if question_count < 3:
        return "linear"
    if question_count > 8:
        return "adaptive"
    return "branching"


def question_type(text: str) -> str:
    lowered = text.strip().lower()
    if "rate" in lowered or "scale" in lowered:
        return "rating"
    if lowered.startswith("describe"):
        return "descriptive"
    return "open_ended"


def engagement_score(data: ConversationData) -> float:
    avg_response_time = mean(data.response_times) if data.response_times else 0
    score = 5
    if avg_response_time < 30:
        score += 2
    if len(data.messages) > 5:
        score += 2
    if data.total_duration > 300:
        score += 1
    return _clamp(score, 1, 10)


def response_patterns(data: ConversationData) -> ResponsePatterns:
    answers = data.user_messages
    if not answers:
        return ResponsePatterns()

    lengths = [len(m.content) for m in answers]
    avg_length = mean(lengths)
    intensities = [m.emotion_analysis.intensity if m.emotion_analysis else 5 for m in answers]
    intense_share = sum(1 for i in intensities if i > 7) / len(answers)
    emotional_share = sum(1 for i in intensities if i > 5) / len(answers)

    return ResponsePatterns(
        average_length=avg_length,
        length_variance=pvariance(lengths) if len(lengths) > 1 else 0,
        complexity_score=min(10, avg_length / 50 + intense_share * 5),
        emotional_depth=emotional_share * 10,
    )


def analyze_interaction_patterns(data: ConversationData, heuristics: PlaceholderHeuristics) -> InteractionAnalysis:
    questions = data.ai_messages
    gaps = len(data.response_times)

    clarity = heuristics.clarity_score(data)
    depth = heuristics.depth_score(data)
    openness = heuristics.openness_score(data)
    trust = heuristics.trust_score(data)

    return InteractionAnalysis(
        conversation_flow=conversation_flow(len(questions)),
        question_types=[question_type(q.content) for q in questions],
        response_patterns=response_patterns(data),
        engagement_metrics=EngagementMetrics(
            total_time_spent=data.total_duration,
            average_response_time=mean(data.response_times) if data.response_times else 0,
            pause_frequency=heuristics.pause_frequency(gaps),
            interruption_count=heuristics.interruption_count(gaps),
            hesitation_count=heuristics.hesitation_count(gaps),
            engagement_score=engagement_score(data),
            estimated=True,
        ),
        effectiveness_metrics=EffectivenessMetrics(
            clarity_score=clarity,
            depth_score=depth,
            openness_score=openness,
            trust_score=trust,
            overall_effectiveness=(clarity + depth + openness + trust) / 4,
        ),
    )


# ============================================================================
# History
# ============================================================================

def well_being_of(conversation: EmotionConversation) -> float:
    return (conversation.overall_emotion or OverallEmotion()).well_being_score


def trend_direction(scores_newest_first: List[float]) -> TrendDirection:
    """Compare the mean of the 3 newest scores with the mean of the next 3 older ones.

    With fewer than 4 scores the newest n - 1 are compared against the oldest.
    """
    n = len(scores_newest_first)
    if n < 2:
        return "stable"
    size = min(3, n - 1)
    recent = mean(scores_newest_first[:size])
    older = mean(scores_newest_first[size:size + 3])
    if recent - older > TREND_THRESHOLD:
        return "improving"
    if recent - older < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def trend_over(history: List[EmotionConversation], days: int, now: datetime) -> TrendDirection:
    cutoff = now - timedelta(days=days)
    return trend_direction([well_being_of(c) for c in history if c.created_at >= cutoff])


def volatility_index(history: List[EmotionConversation]) -> float:
    scores = [well_being_of(c) for c in history]
    return pstdev(scores) if len(scores) > 1 else 0


def recurring_themes(history: List[EmotionConversation]) -> List[str]:
    """Insight key topics that show up in more than one conversation."""
    themes: Counter = Counter()
    for conversation in history:
        if conversation.insights:
            themes.update(list(dict.fromkeys(conversation.insights.key_topics)))
    return [topic for topic, count in themes.most_common() if count > 1]
