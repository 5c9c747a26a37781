"""
Service wiring.

Services are built once per app in create_app() and kept on
app.state.services; route handlers reach them through get_services, so
tests can hand create_app() a container holding fakes.
"""
from typing import Optional

from fastapi import Query, Request

from app.config import Settings, settings as default_settings
from app.services.conversation_analytics_service import ConversationAnalyticsService
from app.services.dashboard_service import DashboardService, TimeWindow
from app.services.db_service import DatabaseService
from app.services.emotion_ai_service import EmotionAIService
from app.services.llm_service import LLMService
from app.services.placeholder_heuristics import PlaceholderHeuristics


class Services:
    """Everything a request handler may need, built from a store and an LLM client."""

    def __init__(
        self,
        db,
        llm,
        settings: Optional[Settings] = None,
        heuristics: Optional[PlaceholderHeuristics] = None,
    ):
        self.settings = settings or default_settings
        self.db = db
        self.llm = llm
        self.emotion_ai = EmotionAIService(llm)
        self.analytics = ConversationAnalyticsService(
            db, self.emotion_ai, heuristics or PlaceholderHeuristics(), self.settings
        )
        self.dashboard = DashboardService(db)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Services":
        settings = settings or default_settings
        return cls(DatabaseService(settings.DATABASE_URL), LLMService(settings), settings)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_time_window(
    time_range: Optional[str] = Query(default=None, alias="timeRange"),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
) -> TimeWindow:
    """Query-string time window; malformed values answer 400."""
    return TimeWindow.parse(time_range, start_date, end_date)
