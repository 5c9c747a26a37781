"""
Dashboard Query Layer

Read-only aggregation over stored analytics. Every public function is a pure
function of the records it is given (plus the window), so asking twice over
the same data returns the same answer.
"""
import re
import logging
from collections import Counter, OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from statistics import mean
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.errors import ValidationError
from app.models.schemas import (
    ConversationAnalytics,
    EmotionAnalyticsRecord,
    EmotionConversation,
    to_document,
    utcnow,
)

logger = logging.getLogger(__name__)

TIME_RANGE_PATTERN = re.compile(r"^(\d{1,4})d$")
MAX_RANGE_DAYS = 3650
RECENT_DAYS = 7


class TimeWindow(BaseModel):
    start: datetime
    end: Optional[datetime] = None
    label: str

    @classmethod
    def parse(
        cls,
        time_range: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        default: str = "30d",
        now: Optional[datetime] = None,
    ) -> "TimeWindow":
        """Build a window from `timeRange=<N>d` or an ISO `startDate`/`endDate` pair.

        An explicit date pair wins over timeRange. Anything malformed raises
        ValidationError (400).
        """
        now = now or utcnow()
        if start_date or end_date:
            if not (start_date and end_date):
                raise ValidationError("startDate and endDate must be given together")
            start = _parse_date(start_date, "startDate", end_of_day=False)
            end = _parse_date(end_date, "endDate", end_of_day=True)
            if start > end:
                raise ValidationError("startDate must not be after endDate")
            return cls(start=start, end=end, label=f"{start_date}..{end_date}")

        time_range = time_range or default
        match = TIME_RANGE_PATTERN.match(time_range.strip())
        if not match or not 1 <= int(match.group(1)) <= MAX_RANGE_DAYS:
            raise ValidationError(f"Invalid timeRange '{time_range}'. Use a number of days like '30d'.")
        days = int(match.group(1))
        return cls(start=now - timedelta(days=days), end=None, label=f"{days}d")


def _parse_date(value: str, field_name: str, end_of_day: bool) -> datetime:
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            parsed = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {field_name} '{value}'. Use an ISO date like 2024-01-31.")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _avg(values: List[float]) -> float:
    return mean(values) if values else 0


def _top_counts(counter: Counter, key: str, limit: int = 5) -> List[Dict[str, Any]]:
    return [{key: item, "count": count} for item, count in counter.most_common(limit)]


# ============================================================================
# Conversation analytics aggregation
# ============================================================================

def empty_dashboard() -> Dict[str, Any]:
    return {
        "overview": {
            "total_conversations": 0,
            "avg_well_being": 0,
            "avg_stress": 0,
            "avg_satisfaction": 0,
            "avg_engagement": 0,
        },
        "emotional_trends": [],
        "top_topics": [],
        "recommendations": [],
        "time_range": [],
    }


def aggregate_analytics(records: List[ConversationAnalytics]) -> Dict[str, Any]:
    """Overview, top emotions, top topics, grouped recommendations and the time series."""
    if not records:
        return empty_dashboard()

    emotions: Counter = Counter()
    topics: Counter = Counter()
    for record in records:
        for emotion in record.emotional_insights.dominant_emotions:
            emotions[emotion.emotion] += emotion.frequency
        for topic in record.topics:
            topics[topic.topic] += topic.frequency

    return {
        "overview": {
            "total_conversations": len(records),
            "avg_well_being": _avg([r.metrics.well_being_score for r in records]),
            "avg_stress": _avg([r.metrics.stress_level for r in records]),
            "avg_satisfaction": _avg([r.metrics.satisfaction_level for r in records]),
            "avg_engagement": _avg([r.quality_metrics.engagement for r in records]),
        },
        "emotional_trends": [
            {"emotion": e, "frequency": n} for e, n in emotions.most_common(5)
        ],
        "top_topics": [
            {"topic": t, "frequency": n} for t, n in topics.most_common(5)
        ],
        "recommendations": aggregate_recommendations(records),
        "time_range": [
            {
                "date": r.date.isoformat(),
                "well_being": r.metrics.well_being_score,
                "stress": r.metrics.stress_level,
                "satisfaction": r.metrics.satisfaction_level,
            }
            for r in records
        ],
    }


def aggregate_recommendations(records: List[ConversationAnalytics]) -> List[Dict[str, Any]]:
    """Recommendations grouped by (type, priority), most frequent first."""
    groups: Counter = Counter()
    for record in records:
        for rec in record.recommendations:
            groups[(rec.type, rec.priority)] += 1
    return [
        {"type": rec_type, "priority": priority, "count": count}
        for (rec_type, priority), count in groups.most_common()
    ]


def _period_key(moment: datetime, granularity: str) -> str:
    if granularity == "daily":
        return moment.date().isoformat()
    if granularity == "weekly":
        # weeks start on Sunday
        week_start = moment.date() - timedelta(days=(moment.weekday() + 1) % 7)
        return week_start.isoformat()
    return f"{moment.year}-{moment.month:02d}"


def calculate_trends(records: List[ConversationAnalytics], granularity: str = "daily") -> List[Dict[str, Any]]:
    if granularity not in ("daily", "weekly", "monthly"):
        raise ValidationError(f"Invalid granularity '{granularity}'. Use daily, weekly or monthly.")

    periods: Dict[str, Dict[str, List[float]]] = {}
    for record in records:
        bucket = periods.setdefault(_period_key(record.date, granularity), {
            "well_being": [], "stress": [], "satisfaction": [], "engagement": [],
        })
        bucket["well_being"].append(record.metrics.well_being_score)
        bucket["stress"].append(record.metrics.stress_level)
        bucket["satisfaction"].append(record.metrics.satisfaction_level)
        bucket["engagement"].append(record.quality_metrics.engagement)

    return [
        {"date": key, **{name: mean(values) for name, values in periods[key].items()}}
        for key in sorted(periods)
    ]


def analyze_topics(records: List[ConversationAnalytics], limit: int = 10) -> List[Dict[str, Any]]:
    """Topic totals across records with the mean of their per-record sentiment."""
    topics: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for record in records:
        for topic in record.topics:
            entry = topics.setdefault(topic.topic, {
                "topic": topic.topic, "frequency": 0, "sentiments": [], "keywords": [],
            })
            entry["frequency"] += topic.frequency
            entry["sentiments"].append(topic.sentiment)
            entry["keywords"].extend(k for k in topic.keywords if k not in entry["keywords"])

    ranked = sorted(topics.values(), key=lambda t: t["frequency"], reverse=True)[:limit]
    return [
        {
            "topic": t["topic"],
            "frequency": t["frequency"],
            "sentiment": _avg(t["sentiments"]),
            "keywords": t["keywords"],
        }
        for t in ranked
    ]


# ============================================================================
# Emotion snapshot aggregation
# ============================================================================

def _snapshot_averages(records: List[EmotionAnalyticsRecord]) -> Dict[str, float]:
    metrics = [r.emotional_metrics for r in records]
    return {
        "average_mood": _avg([m.mood_score for m in metrics]),
        "average_stress": _avg([m.stress_level for m in metrics]),
        "average_energy": _avg([m.energy_level for m in metrics]),
        "average_satisfaction": _avg([m.satisfaction for m in metrics]),
        "average_engagement": _avg([m.engagement for m in metrics]),
        "average_well_being": _avg([m.well_being for m in metrics]),
    }


def _rounded(values: Dict[str, float]) -> Dict[str, float]:
    return {key: round(value, 1) for key, value in values.items()}


def _snapshot_bucket(moment: datetime, granularity: str) -> str:
    if granularity == "hourly":
        return moment.strftime("%Y-%m-%dT%H:00")
    if granularity == "weekly":
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    return moment.date().isoformat()


def snapshot_trends(records: List[EmotionAnalyticsRecord], granularity: str = "daily") -> List[Dict[str, Any]]:
    if granularity not in ("hourly", "daily", "weekly"):
        raise ValidationError(f"Invalid granularity '{granularity}'. Use hourly, daily or weekly.")
    buckets: Dict[str, List[EmotionAnalyticsRecord]] = {}
    for record in records:
        buckets.setdefault(_snapshot_bucket(record.date, granularity), []).append(record)
    return [
        {"period": key, **_snapshot_averages(buckets[key]), "count": len(buckets[key])}
        for key in sorted(buckets)
    ]


def snapshot_heatmap(records: List[EmotionAnalyticsRecord]) -> List[Dict[str, Any]]:
    """Mood/stress/energy by (day of week, hour); day 1 is Sunday, 7 is Saturday."""
    cells: Dict[tuple, List[EmotionAnalyticsRecord]] = {}
    for record in records:
        day = (record.date.weekday() + 1) % 7 + 1
        cells.setdefault((day, record.date.hour), []).append(record)

    heatmap = []
    for (day, hour) in sorted(cells):
        averages = _snapshot_averages(cells[(day, hour)])
        heatmap.append({
            "day_of_week": day,
            "hour": hour,
            "average_mood": round(averages["average_mood"], 1),
            "average_stress": round(averages["average_stress"], 1),
            "average_energy": round(averages["average_energy"], 1),
            "count": len(cells[(day, hour)]),
        })
    return heatmap


def conversation_insight_counts(conversations: List[EmotionConversation]) -> Dict[str, Counter]:
    counts = {
        "patterns": Counter(),
        "concerns": Counter(),
        "positive_factors": Counter(),
        "recommendations": Counter(),
        "topics": Counter(),
    }
    for conversation in conversations:
        insights = conversation.insights
        if insights is None:
            continue
        counts["patterns"].update(insights.emotional_patterns)
        counts["concerns"].update(insights.concerns)
        counts["positive_factors"].update(insights.positive_factors)
        counts["recommendations"].update(insights.recommendations)
        counts["topics"].update(insights.key_topics)
    return counts


class DashboardService:
    """Tenant-scoped dashboard reads over conversation analytics and emotion snapshots"""

    INSIGHT_CONVERSATION_LIMIT = 100

    def __init__(self, db):
        self.db = db

    # Conversation analytics --------------------------------------------------

    def get_dashboard(self, tenant_id: str, window: TimeWindow) -> Dict[str, Any]:
        records = self.db.list_conversation_analytics(tenant_id, since=window.start, until=window.end)
        logger.info(f"📊 Dashboard for tenant {tenant_id} over {window.label}: {len(records)} records")
        return aggregate_analytics(records)

    def list_conversations(
        self,
        tenant_id: str,
        window: Optional[TimeWindow] = None,
        user_id: Optional[str] = None,
        conversation_type: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        since = window.start if window else None
        until = window.end if window else None
        records = self.db.list_conversation_analytics(
            tenant_id, since=since, until=until, user_id=user_id,
            conversation_type=conversation_type, limit=limit, offset=(page - 1) * limit,
        )
        total = self.db.count_conversation_analytics(
            tenant_id, since=since, until=until, user_id=user_id, conversation_type=conversation_type,
        )
        return {
            "analytics": [to_document(r) for r in records],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": -(-total // limit),
            },
        }

    def user_analytics(self, tenant_id: str, user_id: str, window: TimeWindow) -> Dict[str, Any]:
        records = self.db.list_conversation_analytics(
            tenant_id, since=window.start, until=window.end, user_id=user_id
        )
        return {
            "user_analytics": aggregate_analytics(records),
            "individual_conversations": [to_document(r) for r in records],
        }

    def trends(self, tenant_id: str, window: TimeWindow, granularity: str = "daily") -> List[Dict[str, Any]]:
        records = self.db.list_conversation_analytics(tenant_id, since=window.start, until=window.end)
        return calculate_trends(list(reversed(records)), granularity)

    def topics(self, tenant_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
        return analyze_topics(self.db.list_conversation_analytics(tenant_id, since=window.start, until=window.end))

    def recommendations(self, tenant_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
        return aggregate_recommendations(
            self.db.list_conversation_analytics(tenant_id, since=window.start, until=window.end)
        )

    def get_filters(self, tenant_id: str) -> Dict[str, Any]:
        min_date, max_date = self.db.get_analytics_date_range(tenant_id)
        return {
            "conversation_types": self.db.get_conversation_types(tenant_id),
            "date_range": {
                "min_date": min_date.isoformat() if min_date else None,
                "max_date": max_date.isoformat() if max_date else None,
            },
        }

    # Emotion snapshots -------------------------------------------------------

    def _snapshots(self, tenant_id: str, window: TimeWindow, user_id: Optional[str] = None):
        return self.db.list_emotion_analytics(tenant_id, since=window.start, until=window.end, user_id=user_id)

    def emotion_overview(self, tenant_id: str, window: TimeWindow, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        records = self._snapshots(tenant_id, window)
        distribution: Counter = Counter()
        for record in records:
            distribution.update(record.emotional_insights.top_emotions)

        recent = self.db.list_tenant_conversations(
            tenant_id, since=now - timedelta(days=RECENT_DAYS), status="completed"
        )
        return {
            "metrics": {**_snapshot_averages(records), "total_conversations": len(records)},
            "emotion_distribution": _top_counts(distribution, "emotion", limit=10),
            "recent_conversations": len(recent),
        }

    def emotion_trends(self, tenant_id: str, window: TimeWindow, granularity: str = "daily") -> List[Dict[str, Any]]:
        return snapshot_trends(self._snapshots(tenant_id, window), granularity)

    def emotion_heatmap(self, tenant_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
        return snapshot_heatmap(self._snapshots(tenant_id, window))

    def _recent_completed(self, tenant_id: str, window: TimeWindow) -> List[EmotionConversation]:
        conversations = self.db.list_tenant_conversations(
            tenant_id, since=window.start, until=window.end, status="completed"
        )
        return conversations[:self.INSIGHT_CONVERSATION_LIMIT]

    def emotion_insights(self, tenant_id: str, window: TimeWindow) -> Dict[str, Any]:
        counts = conversation_insight_counts(self._recent_completed(tenant_id, window))
        return {
            "top_concerns": _top_counts(counts["concerns"], "concern"),
            "top_positive_factors": _top_counts(counts["positive_factors"], "factor"),
            "top_recommendations": _top_counts(counts["recommendations"], "recommendation"),
            "top_topics": _top_counts(counts["topics"], "topic"),
        }

    def user_emotion_analytics(self, tenant_id: str, user_id: str, window: TimeWindow) -> Dict[str, Any]:
        records = self._snapshots(tenant_id, window, user_id=user_id)
        averages = _snapshot_averages(records)
        return {
            "metrics": {
                "average_mood": averages["average_mood"],
                "average_stress": averages["average_stress"],
                "average_energy": averages["average_energy"],
                "average_satisfaction": averages["average_satisfaction"],
                "total_conversations": len(records),
            },
            "analytics": [to_document(r) for r in records],
        }

    def generate_report(self, tenant_id: str, window: TimeWindow, report_type: str = "comprehensive",
                        now: Optional[datetime] = None) -> Dict[str, Any]:
        records = self._snapshots(tenant_id, window)
        conversations = self.db.list_tenant_conversations(
            tenant_id, since=window.start, until=window.end, status="completed"
        )
        counts = conversation_insight_counts(conversations)
        averages = _snapshot_averages(records)

        return {
            "period": window.label,
            "report_type": report_type,
            "generated_at": (now or utcnow()).isoformat(),
            "summary": {
                "total_conversations": len(conversations),
                "average_mood": averages["average_mood"],
                "average_stress": averages["average_stress"],
                "average_energy": averages["average_energy"],
            },
            "trends": [
                {
                    "date": r.date.isoformat(),
                    "mood": r.emotional_metrics.mood_score,
                    "stress": r.emotional_metrics.stress_level,
                    "energy": r.emotional_metrics.energy_level,
                }
                for r in records
            ],
            "insights": {
                "top_emotions": _top_counts(counts["patterns"], "emotion"),
                "top_concerns": _top_counts(counts["concerns"], "concern"),
                "top_positive_factors": _top_counts(counts["positive_factors"], "factor"),
                "recommendations": _top_counts(counts["recommendations"], "recommendation"),
            },
        }

    def departments(self, tenant_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
        """Snapshot averages grouped by the department on each user's profile."""
        department_of = {
            p.user_id: p.demographics.department or "unassigned"
            for p in self.db.list_user_profiles(tenant_id)
        }
        groups: Dict[str, List[EmotionAnalyticsRecord]] = {}
        for record in self._snapshots(tenant_id, window):
            groups.setdefault(department_of.get(record.user_id, "unassigned"), []).append(record)

        rows = []
        for department, records in groups.items():
            averages = _snapshot_averages(records)
            rows.append({
                "department": department,
                "total_users": len({r.user_id for r in records}),
                "average_mood": round(averages["average_mood"], 1),
                "average_stress": round(averages["average_stress"], 1),
                "average_energy": round(averages["average_energy"], 1),
                "total_conversations": len(records),
            })
        return sorted(rows, key=lambda row: (-row["average_mood"], row["department"]))

    def organization(self, tenant_id: str, window: TimeWindow) -> Dict[str, Any]:
        records = self._snapshots(tenant_id, window)
        return {
            "total_users": len({r.user_id for r in records}),
            **_rounded(_snapshot_averages(records)),
            "total_conversations": len(records),
        }
