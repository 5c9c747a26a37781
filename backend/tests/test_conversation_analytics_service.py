"""
Unit tests for the conversation analytics aggregator
"""
from datetime import timedelta

import pytest

from conftest import FakeLLM, make_conversation, make_user
from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.schemas import (
    BaselineMetrics,
    ConversationInsights,
    EmotionalBaseline,
    EmotionAnalysis,
    OverallEmotion,
    Recommendation,
    UserProfile,
    utcnow,
)
from app.services.conversation_analytics_service import ConversationAnalyticsService
from app.services.emotion_ai_service import EmotionAIService
from app.services.placeholder_heuristics import PlaceholderHeuristics


def build_service(db, llm=None, settings=None):
    return ConversationAnalyticsService(db, EmotionAIService(llm or FakeLLM()), PlaceholderHeuristics(), settings)


def completed(db, tenant_id="t1", user_id="u1", well_being=6.0, stress=5.0, days_ago=0, **fields):
    conversation = make_conversation(
        tenant_id, user_id,
        [("How are you?", "Busy with the deadline", EmotionAnalysis(primary_emotion="stress", intensity=7))],
        overall=OverallEmotion(well_being_score=well_being, stress_level=stress),
        created_at=utcnow() - timedelta(days=days_ago),
        **fields,
    )
    return db.create_conversation(conversation)


class TestBuildAnalytics:
    """Test the full rollup under provider failure"""

    @pytest.mark.asyncio
    async def test_provider_down_still_builds_complete_record(self, fake_db, test_settings):
        conversation = completed(fake_db)
        record = await build_service(fake_db, settings=test_settings).build_analytics(conversation)

        assert record.tenant_id == "t1"
        assert record.conversation_id == conversation.id
        assert record.ai_performance.helpfulness is None
        assert record.quality_metrics.helpfulness == 7
        assert record.predictive_insights.predicted_outcomes.confidence == 0.5
        assert record.historical_analysis.conversations_considered == 1
        assert record.historical_analysis.trend_direction == "stable"
        assert record.historical_analysis.previous_mood == 5
        assert record.topics[0].topic == "work"
        assert record.interaction_analysis.engagement_metrics.estimated is True

    @pytest.mark.asyncio
    async def test_reviewed_helpfulness_flows_into_quality(self, fake_db, test_settings):
        llm = FakeLLM({"ConversationReviewPayload": {"ai_performance": {"helpfulness": 9}}})
        record = await build_service(fake_db, llm, test_settings).build_analytics(completed(fake_db))

        assert record.ai_performance.helpfulness == 9
        assert record.quality_metrics.helpfulness == 9

    @pytest.mark.asyncio
    async def test_history_trend_and_previous_mood(self, fake_db, test_settings):
        completed(fake_db, well_being=4, days_ago=3)
        current = completed(fake_db, well_being=8)

        record = await build_service(fake_db, settings=test_settings).build_analytics(current)
        history = record.historical_analysis

        assert history.previous_mood == 4
        assert history.trend_direction == "improving"
        assert history.trend_analysis.short_term_trend == "improving"
        assert history.conversations_considered == 2

    @pytest.mark.asyncio
    async def test_history_ignores_other_tenants(self, fake_db, test_settings):
        completed(fake_db, tenant_id="t2", well_being=1, days_ago=1)
        current = completed(fake_db, well_being=8)

        record = await build_service(fake_db, settings=test_settings).build_analytics(current)

        assert record.historical_analysis.conversations_considered == 1
        assert record.historical_analysis.previous_mood == 5

    @pytest.mark.asyncio
    async def test_baseline_comparison_uses_profile(self, fake_db, test_settings):
        fake_db.upsert_user_profile(UserProfile(
            tenant_id="t1", user_id="u1",
            baseline_metrics=BaselineMetrics(emotional_baseline=EmotionalBaseline(mood=5, stress=6)),
        ))
        record = await build_service(fake_db, settings=test_settings).build_analytics(
            completed(fake_db, well_being=7, stress=4)
        )
        comparison = record.historical_analysis.baseline_comparison

        assert comparison.mood_vs_baseline == 2
        assert comparison.stress_vs_baseline == -2


class TestAnalyzeConversation:
    """Test access rules and insert-if-absent"""

    @pytest.mark.asyncio
    async def test_repeated_analysis_returns_same_record(self, fake_db, test_settings):
        conversation = completed(fake_db)
        service = build_service(fake_db, settings=test_settings)

        first = await service.analyze_conversation("t1", conversation.id)
        second = await service.analyze_conversation("t1", conversation.id)

        assert first.id == second.id
        assert len(fake_db.conversation_analytics) == 1

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, fake_db, test_settings):
        with pytest.raises(NotFoundError):
            await build_service(fake_db, settings=test_settings).analyze_conversation("t1", "missing")

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_conversation(self, fake_db, test_settings):
        conversation = completed(fake_db, tenant_id="t1")
        with pytest.raises(NotFoundError):
            await build_service(fake_db, settings=test_settings).analyze_conversation("t2", conversation.id)

    @pytest.mark.asyncio
    async def test_in_progress_is_rejected(self, fake_db, test_settings):
        conversation = fake_db.create_conversation(make_conversation("t1", "u1", status="in_progress"))
        with pytest.raises(ValidationError):
            await build_service(fake_db, settings=test_settings).analyze_conversation("t1", conversation.id)

    @pytest.mark.asyncio
    async def test_only_owner_or_admin(self, fake_db, test_settings):
        owner = make_user(fake_db, "t1")
        stranger = make_user(fake_db, "t1")
        admin = make_user(fake_db, "t1", role="admin")
        conversation = completed(fake_db, user_id=owner.id)
        service = build_service(fake_db, settings=test_settings)

        with pytest.raises(ForbiddenError):
            await service.analyze_conversation("t1", conversation.id, requested_by=stranger)
        record = await service.analyze_conversation("t1", conversation.id, requested_by=admin)
        assert record.user_id == owner.id


class TestComparativeAndTracking:

    def test_personal_baseline_areas(self, fake_db, test_settings):
        history = [
            make_conversation("t1", "u1", overall=OverallEmotion(
                stress_level=8, well_being_score=8, energy_level=4, satisfaction=6,
            )),
        ]
        baseline = build_service(fake_db, settings=test_settings).personal_baseline(history)

        assert baseline.improvement_areas == ["stress_management", "energy"]
        assert baseline.strength_areas == ["well_being"]
        assert baseline.historical_average["stress"] == 8

    def test_personal_baseline_without_history(self, fake_db, test_settings):
        baseline = build_service(fake_db, settings=test_settings).personal_baseline([])
        assert baseline.historical_average == {}

    def test_follow_up_required_for_high_priority(self, fake_db, test_settings):
        now = utcnow()
        service = build_service(fake_db, settings=test_settings)
        tracking = service.initialize_action_tracking([
            Recommendation(type="emotional_support", priority="high", description="x"),
        ], now)

        assert tracking.follow_up_required is True
        assert tracking.follow_up_date == now + timedelta(days=test_settings.FOLLOW_UP_DAYS)
        assert tracking.recommendations_given[0].given_at == now
        assert tracking.actions_taken == []

    def test_no_follow_up_without_high_priority(self, fake_db, test_settings):
        tracking = build_service(fake_db, settings=test_settings).initialize_action_tracking([], utcnow())
        assert tracking.follow_up_required is False


class TestCompletionSnapshot:

    def test_snapshot_from_overall_emotion(self, fake_db, test_settings):
        conversation = completed(
            fake_db, well_being=7, stress=3,
            insights=ConversationInsights(concerns=["workload"], recommendations=["take breaks"]),
        )
        record = build_service(fake_db, settings=test_settings).record_completion_snapshot(conversation)

        assert record.emotional_metrics.mood_score == 7
        assert record.emotional_metrics.stress_level == 3
        assert record.emotional_metrics.engagement == 5
        assert record.emotional_insights.top_emotions == ["stress"]
        assert record.emotional_insights.concerns == ["workload"]
        assert record.date == conversation.completed_at
        assert len(fake_db.emotion_analytics) == 1
