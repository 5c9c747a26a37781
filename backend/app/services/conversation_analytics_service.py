"""
Conversation Analytics Aggregator

Turns one completed EmotionConversation into one ConversationAnalytics
record: metrics, emotional content, topics, quality, recommendations,
context, interaction, history, projections, comparisons and action tracking.
The record is built completely before the single insert-if-absent, so a
failure part way through never leaves a partial document behind.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from statistics import mean
from typing import Dict, List, Optional

from app.config import Settings, settings as default_settings
from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.schemas import (
    ActionTracking,
    BaselineComparison,
    ComparativeAnalytics,
    ConversationAnalytics,
    ConversationMetrics,
    EmotionAnalyticsRecord,
    EmotionalMetrics,
    EmotionalTrends,
    EmotionConversation,
    HistoricalAnalysis,
    IndustryBenchmarks,
    OverallEmotion,
    PeerComparison,
    PersonalBaseline,
    Recommendation,
    RecommendationGiven,
    SnapshotInsights,
    TrendAnalysis,
    User,
    UserProfile,
    utcnow,
)
from app.services import conversation_metrics as calc
from app.services.emotion_ai_service import EmotionAIService
from app.services.placeholder_heuristics import PlaceholderHeuristics

logger = logging.getLogger(__name__)


class ConversationAnalyticsService:
    """Builds and stores per-conversation analytics rollups"""

    def __init__(
        self,
        db,
        emotion_ai: EmotionAIService,
        heuristics: Optional[PlaceholderHeuristics] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.emotion_ai = emotion_ai
        self.heuristics = heuristics or PlaceholderHeuristics()
        self.settings = settings or default_settings

    async def analyze_conversation(
        self, tenant_id: str, conversation_id: str, requested_by: Optional[User] = None
    ) -> ConversationAnalytics:
        """Analyze a completed conversation of the tenant, or return its existing record.

        Only the conversation's owner or an admin may request it.
        """
        conversation = self.db.get_conversation(tenant_id, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if requested_by is not None and requested_by.id != conversation.user_id and requested_by.role != "admin":
            raise ForbiddenError("You can only analyze your own conversations")
        if conversation.status != "completed":
            raise ValidationError("Conversation must be completed before it can be analyzed")
        return await self.analyze_completed(conversation)

    async def analyze_completed(self, conversation: EmotionConversation) -> ConversationAnalytics:
        existing = self.db.get_conversation_analytics(conversation.tenant_id, conversation.id)
        if existing is not None:
            logger.info(f"📊 Reusing analytics {existing.id} for conversation {conversation.id}")
            return existing

        record = await self.build_analytics(conversation)
        stored = self.db.insert_conversation_analytics(record)
        logger.info(f"✅ Stored conversation analytics {stored.id} for conversation {conversation.id}")
        return stored

    async def build_analytics(self, conversation: EmotionConversation, now: Optional[datetime] = None) -> ConversationAnalytics:
        now = now or utcnow()
        tenant_id, user_id = conversation.tenant_id, conversation.user_id
        logger.info(f"📊 Analyzing conversation {conversation.id} for user {user_id}")

        data = calc.extract_conversation_data(conversation)
        review = await self.emotion_ai.review_conversation(data.transcript())

        metrics = calc.calculate_metrics(data)
        emotional_insights = calc.analyze_emotional_content(data)
        topics = calc.analyze_topics(data)
        quality = calc.calculate_quality_metrics(data, review.ai_performance.helpfulness, self.heuristics)
        recommendations = calc.generate_recommendations(data, topics)
        contextual = calc.analyze_contextual_factors(conversation)
        interaction = calc.analyze_interaction_patterns(data, self.heuristics)

        profile = self.db.get_user_profile(tenant_id, user_id)
        history = self._load_history(conversation, now)
        historical = self.analyze_historical_context(conversation, history, profile, now)

        conversation_summary = {
            "conversation_type": conversation.conversation_type,
            "metrics": metrics.model_dump(mode="json"),
            "overall_emotion": (conversation.overall_emotion or OverallEmotion()).model_dump(mode="json"),
            "key_topics": conversation.insights.key_topics if conversation.insights else [],
            "topics": [t.topic for t in topics],
        }
        predictive = await self.emotion_ai.predict_outcomes(conversation_summary, historical.model_dump(mode="json"))

        comparative = self.generate_comparative_analytics(metrics, history, profile)
        action_tracking = self.initialize_action_tracking(recommendations, now)

        return ConversationAnalytics(
            tenant_id=tenant_id,
            user_id=user_id,
            conversation_id=conversation.id,
            date=now,
            conversation_type=conversation.conversation_type,
            metrics=metrics,
            emotional_insights=emotional_insights,
            topics=topics,
            quality_metrics=quality,
            ai_performance=review.ai_performance,
            recommendations=recommendations,
            conversation_summary=review.summary,
            contextual_analysis=contextual,
            interaction_analysis=interaction,
            historical_analysis=historical,
            predictive_insights=predictive,
            comparative_analytics=comparative,
            action_tracking=action_tracking,
            created_at=now,
        )

    def _load_history(self, conversation: EmotionConversation, now: datetime) -> List[EmotionConversation]:
        """The user's completed conversations in the history window, newest first, current included."""
        since = now - timedelta(days=self.settings.HISTORY_WINDOW_DAYS)
        history = self.db.list_user_conversations(
            conversation.tenant_id, conversation.user_id, since=since, status="completed"
        )
        if all(c.id != conversation.id for c in history):
            history.append(conversation)
        return sorted(history, key=lambda c: c.created_at, reverse=True)

    def analyze_historical_context(
        self,
        conversation: EmotionConversation,
        history: List[EmotionConversation],
        profile: Optional[UserProfile],
        now: datetime,
    ) -> HistoricalAnalysis:
        previous = next((c for c in history if c.id != conversation.id), None)
        scores = [calc.well_being_of(c) for c in history]

        return HistoricalAnalysis(
            previous_mood=calc.well_being_of(previous) if previous else 5,
            trend_direction=calc.trend_direction(scores),
            recurring_themes=calc.recurring_themes(history),
            progress_indicators=self.heuristics.progress_indicators(history),
            baseline_comparison=self._baseline_comparison(conversation, profile),
            trend_analysis=TrendAnalysis(
                short_term_trend=calc.trend_over(history, 7, now),
                medium_term_trend=calc.trend_over(history, 30, now),
                long_term_trend=calc.trend_over(history, 90, now),
                volatility_index=calc.volatility_index(history),
            ),
            conversations_considered=len(history),
        )

    def _baseline_comparison(self, conversation: EmotionConversation, profile: Optional[UserProfile]) -> BaselineComparison:
        if profile is None or profile.baseline_metrics.emotional_baseline is None:
            return BaselineComparison()
        baseline = profile.baseline_metrics.emotional_baseline
        overall = conversation.overall_emotion or OverallEmotion()
        return BaselineComparison(
            mood_vs_baseline=overall.well_being_score - baseline.mood,
            stress_vs_baseline=overall.stress_level - baseline.stress,
            energy_vs_baseline=overall.energy_level - baseline.energy,
            satisfaction_vs_baseline=overall.satisfaction - baseline.satisfaction,
        )

    def generate_comparative_analytics(
        self,
        metrics: ConversationMetrics,
        history: List[EmotionConversation],
        profile: Optional[UserProfile],
    ) -> ComparativeAnalytics:
        peers = self.heuristics.peer_averages(profile)
        industry = self.heuristics.industry_average()

        return ComparativeAnalytics(
            peer_comparison=PeerComparison(
                department_average=peers.get("department", {}),
                role_average=peers.get("role", {}),
                experience_level_average=peers.get("experience", {}),
                percentile_ranking=self.heuristics.percentile_ranking(metrics, peers),
            ),
            industry_benchmarks=IndustryBenchmarks(
                industry_average=industry,
                best_practices=self.heuristics.best_practices(),
                benchmark_comparison={
                    "well_being": metrics.well_being_score - industry.get("well_being", 0),
                    "stress": metrics.stress_level - industry.get("stress", 0),
                    "satisfaction": metrics.satisfaction_level - industry.get("satisfaction", 0),
                },
            ),
            personal_baseline=self.personal_baseline(history),
        )

    def personal_baseline(self, history: List[EmotionConversation]) -> PersonalBaseline:
        overalls = [c.overall_emotion for c in history if c.overall_emotion is not None]
        if not overalls:
            return PersonalBaseline()

        average: Dict[str, float] = {
            "well_being": mean(o.well_being_score for o in overalls),
            "stress": mean(o.stress_level for o in overalls),
            "energy": mean(o.energy_level for o in overalls),
            "satisfaction": mean(o.satisfaction for o in overalls),
        }

        improvement, strengths = [], []
        if average["stress"] > 6:
            improvement.append("stress_management")
        elif average["stress"] <= 4:
            strengths.append("stress_management")
        if average["well_being"] < 5:
            improvement.append("well_being")
        elif average["well_being"] >= 7:
            strengths.append("well_being")
        if average["energy"] < 5:
            improvement.append("energy")
        elif average["energy"] >= 7:
            strengths.append("energy")
        if average["satisfaction"] < 5:
            improvement.append("job_satisfaction")
        elif average["satisfaction"] >= 7:
            strengths.append("job_satisfaction")

        return PersonalBaseline(historical_average=average, improvement_areas=improvement, strength_areas=strengths)

    def initialize_action_tracking(self, recommendations: List[Recommendation], now: datetime) -> ActionTracking:
        return ActionTracking(
            recommendations_given=[
                RecommendationGiven(
                    type=rec.type,
                    description=rec.description,
                    priority=rec.priority,
                    given_at=now,
                )
                for rec in recommendations
            ],
            actions_taken=[],
            follow_up_required=any(rec.priority == "high" for rec in recommendations),
            follow_up_date=now + timedelta(days=self.settings.FOLLOW_UP_DAYS),
            intervention_history=[],
        )

    def record_completion_snapshot(self, conversation: EmotionConversation) -> EmotionAnalyticsRecord:
        """Store the simple per-completion snapshot used by the emotion analytics dashboard."""
        overall = conversation.overall_emotion or OverallEmotion()
        moment = conversation.completed_at or utcnow()

        emotions: Counter = Counter()
        triggers: Counter = Counter()
        needs: Counter = Counter()
        for question in conversation.questions:
            emotions[question.emotion_analysis.primary_emotion] += 1
            triggers.update(question.emotion_analysis.triggers)
            needs.update(question.emotion_analysis.needs)

        insights = conversation.insights
        record = EmotionAnalyticsRecord(
            tenant_id=conversation.tenant_id,
            user_id=conversation.user_id,
            conversation_id=conversation.id,
            date=moment,
            emotional_metrics=EmotionalMetrics(
                mood_score=overall.well_being_score,
                stress_level=overall.stress_level,
                energy_level=overall.energy_level,
                satisfaction=overall.satisfaction,
                engagement=overall.average_intensity,
                well_being=overall.well_being_score,
            ),
            emotional_trends=EmotionalTrends(
                daily_mood=[overall.well_being_score],
                weekly_pattern={calc.day_of_week(moment): overall.well_being_score},
                monthly_trend={moment.strftime("%Y-%m"): overall.well_being_score},
            ),
            emotional_insights=SnapshotInsights(
                top_emotions=[e for e, _ in emotions.most_common(5)],
                emotional_triggers=[t for t, _ in triggers.most_common(5)],
                emotional_needs=[n for n, _ in needs.most_common(5)],
                recommendations=insights.recommendations if insights else [],
                concerns=insights.concerns if insights else [],
                positive_factors=insights.positive_factors if insights else [],
            ),
            created_at=moment,
        )
        stored = self.db.insert_emotion_analytics(record)
        logger.info(f"📊 Stored emotion snapshot {stored.id} for conversation {conversation.id}")
        return stored
