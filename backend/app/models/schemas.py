"""
Pydantic documents for the MoodPulse data model.

Each document is stored whole in the `data` JSONB column of its table
(see schema.sql); the scalar columns next to it only exist for filtering.
Every document except Tenant carries a tenant_id.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


ConversationType = Literal["daily", "weekly", "monthly", "custom"]
ConversationStatus = Literal["in_progress", "completed", "abandoned"]
Priority = Literal["high", "medium", "low"]


# ============================================================================
# Tenants & users
# ============================================================================

class TenantTheme(BaseModel):
    primary_color: str = "#3B82F6"
    secondary_color: str = "#1E40AF"
    logo: str = ""


class TenantFeatures(BaseModel):
    ai_analysis: bool = True
    custom_questions: bool = False
    analytics: bool = True


class TenantLimits(BaseModel):
    max_surveys: int = 10
    max_responses: int = 1000
    max_users: int = 50


class TenantSettings(BaseModel):
    theme: TenantTheme = Field(default_factory=TenantTheme)
    features: TenantFeatures = Field(default_factory=TenantFeatures)
    limits: TenantLimits = Field(default_factory=TenantLimits)


class Subscription(BaseModel):
    plan: Literal["free", "basic", "premium", "enterprise"] = "free"
    status: Literal["active", "suspended", "cancelled"] = "active"
    expires_at: Optional[datetime] = None

    def is_current(self, now: Optional[datetime] = None) -> bool:
        if self.status != "active":
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())


class Tenant(BaseModel):
    """Organization boundary; all other documents are partitioned by it."""
    id: str = Field(default_factory=new_id)
    name: str
    domain: str
    subdomain: Optional[str] = None
    settings: TenantSettings = Field(default_factory=TenantSettings)
    subscription: Subscription = Field(default_factory=Subscription)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


UserRole = Literal["admin", "user", "manager", "analyst", "viewer"]
Permission = Literal[
    "create_surveys",
    "edit_surveys",
    "delete_surveys",
    "view_analytics",
    "manage_users",
    "manage_tenant",
]


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    tenant_id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: UserRole = "user"
    permissions: List[Permission] = Field(default_factory=list)
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class EmotionalBaseline(BaseModel):
    mood: float = 5
    stress: float = 5
    energy: float = 5
    satisfaction: float = 5


class BaselineMetrics(BaseModel):
    emotional_baseline: Optional[EmotionalBaseline] = None
    established_at: Optional[datetime] = None
    sample_size: int = 0


class Demographics(BaseModel):
    department: Optional[str] = None
    role: Optional[str] = None
    experience: Optional[Literal["entry", "mid", "senior", "executive"]] = None
    tenure: Optional[float] = None
    location: Optional[str] = None


class AnalyticsPreferences(BaseModel):
    share_data: bool = True
    include_in_aggregates: bool = True
    receive_insights: bool = True
    data_retention_period: int = 365


class UserProfile(BaseModel):
    id: str = Field(default_factory=new_id)
    tenant_id: str
    user_id: str
    demographics: Demographics = Field(default_factory=Demographics)
    baseline_metrics: BaselineMetrics = Field(default_factory=BaselineMetrics)
    analytics_preferences: AnalyticsPreferences = Field(default_factory=AnalyticsPreferences)
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Emotion conversations
# ============================================================================

class EmotionAnalysis(BaseModel):
    """Per-response emotion scoring.

    The *_scored flags record whether the provider actually returned a usable
    value; a neutral default substituted after a failure leaves them False.
    """
    primary_emotion: str = "neutral"
    intensity: float = Field(default=5, ge=1, le=10)
    confidence: float = Field(default=0.3, ge=0, le=1)
    triggers: List[str] = Field(default_factory=list)
    context: str = "workplace"
    needs: List[str] = Field(default_factory=list)
    sentiment: float = Field(default=0, ge=-1, le=1)
    intensity_scored: bool = False
    sentiment_scored: bool = False


class QuestionEntry(BaseModel):
    question_id: str
    question_text: str
    user_response: str
    emotion_analysis: EmotionAnalysis = Field(default_factory=EmotionAnalysis)
    timestamp: datetime = Field(default_factory=utcnow)


class OverallEmotion(BaseModel):
    dominant_emotion: str = "neutral"
    average_intensity: float = Field(default=5, ge=1, le=10)
    emotional_state: str = "balanced"
    well_being_score: float = Field(default=5, ge=1, le=10)
    stress_level: float = Field(default=5, ge=1, le=10)
    energy_level: float = Field(default=5, ge=1, le=10)
    satisfaction: float = Field(default=5, ge=1, le=10)


class ConversationInsights(BaseModel):
    emotional_patterns: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    positive_factors: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    key_topics: List[str] = Field(default_factory=list)


class ContextualFactors(BaseModel):
    workload: Optional[float] = None
    weather: Optional[str] = None
    location: Optional[str] = None
    device: Optional[str] = None
    external_events: List[str] = Field(default_factory=list)


class EmotionConversation(BaseModel):
    id: str = Field(default_factory=new_id)
    tenant_id: str
    user_id: str
    session_id: str = Field(default_factory=new_id)
    conversation_type: ConversationType = "daily"
    questions: List[QuestionEntry] = Field(default_factory=list)
    overall_emotion: Optional[OverallEmotion] = None
    insights: Optional[ConversationInsights] = None
    contextual_factors: Optional[ContextualFactors] = None
    status: ConversationStatus = "in_progress"
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


# ============================================================================
# Emotion analytics snapshot (simple dashboard)
# ============================================================================

class EmotionalMetrics(BaseModel):
    mood_score: float
    stress_level: float
    energy_level: float
    satisfaction: float
    engagement: float
    well_being: float


class EmotionalTrends(BaseModel):
    daily_mood: List[float] = Field(default_factory=list)
    weekly_pattern: Dict[str, float] = Field(default_factory=dict)
    monthly_trend: Dict[str, float] = Field(default_factory=dict)


class SnapshotInsights(BaseModel):
    top_emotions: List[str] = Field(default_factory=list)
    emotional_triggers: List[str] = Field(default_factory=list)
    emotional_needs: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    positive_factors: List[str] = Field(default_factory=list)


class EmotionAnalyticsRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    tenant_id: str
    user_id: str
    conversation_id: str
    date: datetime = Field(default_factory=utcnow)
    emotional_metrics: EmotionalMetrics
    emotional_trends: EmotionalTrends = Field(default_factory=EmotionalTrends)
    emotional_insights: SnapshotInsights = Field(default_factory=SnapshotInsights)
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Conversation analytics rollup
# ============================================================================

class ConversationMetrics(BaseModel):
    total_messages: int = 0
    user_messages: int = 0
    ai_messages: int = 0
    conversation_duration: float = 0  # seconds
    average_response_time: float = 0  # seconds
    sentiment_score: float = 0
    emotional_intensity: float = 5
    well_being_score: float = 5
    stress_level: float = 5
    energy_level: float = 5
    satisfaction_level: float = 5


class EmotionFrequency(BaseModel):
    emotion: str
    frequency: int
    intensity: float


class TriggerFrequency(BaseModel):
    trigger: str
    frequency: int
    impact: float


class NeedFrequency(BaseModel):
    need: str
    frequency: int
    priority: float


class MoodPattern(BaseModel):
    pattern: str
    frequency: int
    description: str = ""


class EmotionalInsightSummary(BaseModel):
    dominant_emotions: List[EmotionFrequency] = Field(default_factory=list)
    emotional_triggers: List[TriggerFrequency] = Field(default_factory=list)
    emotional_needs: List[NeedFrequency] = Field(default_factory=list)
    mood_patterns: List[MoodPattern] = Field(default_factory=list)


class TopicCount(BaseModel):
    topic: str
    frequency: int
    sentiment: float = 0
    keywords: List[str] = Field(default_factory=list)


class QualityMetrics(BaseModel):
    engagement: float
    openness: float
    trust: float
    satisfaction: float
    helpfulness: float


class AIPerformance(BaseModel):
    response_relevance: float = 7
    empathy_level: float = 7
    question_quality: float = 7
    contextual_awareness: float = 7
    helpfulness: Optional[float] = None


class Recommendation(BaseModel):
    type: str
    priority: Priority
    description: str
    actionable: bool = True


class ConversationSummary(BaseModel):
    key_points: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    positive_aspects: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list)


class ContextualAnalysis(BaseModel):
    time_of_day: str
    day_of_week: str
    season: str
    external_events: List[str] = Field(default_factory=list)
    workload: float = 5
    weather: str = "unknown"
    location: str = "unknown"
    device: str = "unknown"
    impact_on_mood: float = 0
    environmental_stressors: List[str] = Field(default_factory=list)
    environmental_supports: List[str] = Field(default_factory=list)


class ResponsePatterns(BaseModel):
    average_length: float = 0
    length_variance: float = 0
    complexity_score: float = 5
    emotional_depth: float = 5


class EngagementMetrics(BaseModel):
    """Engagement figures for text conversations.

    No audio or keystroke timing exists for this conversation type, so pause,
    interruption and hesitation counts are estimates derived from the number
    of answers; `estimated` is always True for them.
    """
    total_time_spent: float = 0
    average_response_time: float = 0
    pause_frequency: float = 0
    interruption_count: int = 0
    hesitation_count: int = 0
    engagement_score: float = 5
    estimated: bool = True


class EffectivenessMetrics(BaseModel):
    clarity_score: float
    depth_score: float
    openness_score: float
    trust_score: float
    overall_effectiveness: float


class InteractionAnalysis(BaseModel):
    conversation_flow: Literal["linear", "branching", "adaptive"]
    question_types: List[str] = Field(default_factory=list)
    response_patterns: ResponsePatterns = Field(default_factory=ResponsePatterns)
    engagement_metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    effectiveness_metrics: EffectivenessMetrics


class ProgressIndicators(BaseModel):
    emotional_growth: float = 5
    stress_management: float = 5
    self_awareness: float = 5
    coping_strategies: float = 5


class BaselineComparison(BaseModel):
    mood_vs_baseline: float = 0
    stress_vs_baseline: float = 0
    energy_vs_baseline: float = 0
    satisfaction_vs_baseline: float = 0


TrendDirection = Literal["improving", "declining", "stable"]


class TrendAnalysis(BaseModel):
    short_term_trend: TrendDirection = "stable"
    medium_term_trend: TrendDirection = "stable"
    long_term_trend: TrendDirection = "stable"
    volatility_index: float = 0


class HistoricalAnalysis(BaseModel):
    previous_mood: float = 5
    trend_direction: TrendDirection = "stable"
    recurring_themes: List[str] = Field(default_factory=list)
    progress_indicators: ProgressIndicators = Field(default_factory=ProgressIndicators)
    baseline_comparison: BaselineComparison = Field(default_factory=BaselineComparison)
    trend_analysis: TrendAnalysis = Field(default_factory=TrendAnalysis)
    conversations_considered: int = 0


class PredictedOutcomes(BaseModel):
    next_week_mood: float = 5
    next_week_stress: float = 5
    next_week_energy: float = 5
    confidence: float = 0.5


class PredictiveInsights(BaseModel):
    risk_factors: List[str] = Field(default_factory=list)
    improvement_areas: List[str] = Field(default_factory=list)
    success_indicators: List[str] = Field(default_factory=list)
    intervention_recommendations: List[str] = Field(default_factory=list)
    predicted_outcomes: PredictedOutcomes = Field(default_factory=PredictedOutcomes)
    early_warning_signals: List[str] = Field(default_factory=list)
    opportunity_areas: List[str] = Field(default_factory=list)


class PeerComparison(BaseModel):
    department_average: Dict[str, float] = Field(default_factory=dict)
    role_average: Dict[str, float] = Field(default_factory=dict)
    experience_level_average: Dict[str, float] = Field(default_factory=dict)
    percentile_ranking: float = 50


class IndustryBenchmarks(BaseModel):
    industry_average: Dict[str, float] = Field(default_factory=dict)
    best_practices: List[str] = Field(default_factory=list)
    benchmark_comparison: Dict[str, float] = Field(default_factory=dict)


class PersonalBaseline(BaseModel):
    historical_average: Dict[str, float] = Field(default_factory=dict)
    improvement_areas: List[str] = Field(default_factory=list)
    strength_areas: List[str] = Field(default_factory=list)


class ComparativeAnalytics(BaseModel):
    peer_comparison: PeerComparison = Field(default_factory=PeerComparison)
    industry_benchmarks: IndustryBenchmarks = Field(default_factory=IndustryBenchmarks)
    personal_baseline: PersonalBaseline = Field(default_factory=PersonalBaseline)


class RecommendationGiven(BaseModel):
    type: str
    description: str
    priority: Priority
    given_at: datetime = Field(default_factory=utcnow)


class ActionTaken(BaseModel):
    recommendation_id: str
    action: str
    taken_at: datetime
    outcome: Optional[str] = None
    effectiveness: Optional[float] = None


class InterventionEntry(BaseModel):
    date: datetime
    type: str
    outcome: Optional[str] = None
    effectiveness: Optional[float] = None


class ActionTracking(BaseModel):
    recommendations_given: List[RecommendationGiven] = Field(default_factory=list)
    actions_taken: List[ActionTaken] = Field(default_factory=list)
    follow_up_required: bool = False
    follow_up_date: Optional[datetime] = None
    intervention_history: List[InterventionEntry] = Field(default_factory=list)


class ConversationAnalytics(BaseModel):
    """One rollup record per completed conversation (never mutated)."""
    id: str = Field(default_factory=new_id)
    tenant_id: str
    user_id: str
    conversation_id: str
    date: datetime = Field(default_factory=utcnow)
    conversation_type: ConversationType
    metrics: ConversationMetrics
    emotional_insights: EmotionalInsightSummary
    topics: List[TopicCount] = Field(default_factory=list)
    quality_metrics: QualityMetrics
    ai_performance: AIPerformance = Field(default_factory=AIPerformance)
    recommendations: List[Recommendation] = Field(default_factory=list)
    conversation_summary: ConversationSummary = Field(default_factory=ConversationSummary)
    contextual_analysis: ContextualAnalysis
    interaction_analysis: InteractionAnalysis
    historical_analysis: HistoricalAnalysis = Field(default_factory=HistoricalAnalysis)
    predictive_insights: PredictiveInsights = Field(default_factory=PredictiveInsights)
    comparative_analytics: ComparativeAnalytics = Field(default_factory=ComparativeAnalytics)
    action_tracking: ActionTracking = Field(default_factory=ActionTracking)
    created_at: datetime = Field(default_factory=utcnow)


def to_document(model: BaseModel) -> Dict[str, Any]:
    """JSON-safe dict for the data JSONB column and for API responses."""
    return model.model_dump(mode="json")
