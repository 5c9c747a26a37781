"""
Placeholder figures for analytics that have no real data source yet.

Peer and industry comparisons, effectiveness scores and the text-conversation
engagement estimates all come from here. Swap in a subclass once a real
source exists; the aggregator only talks to this interface.
"""
import math
from typing import Dict, List, Optional

from app.models.schemas import ProgressIndicators, UserProfile


class PlaceholderHeuristics:
    """Fixed stand-in values; every number here is a placeholder, not a measurement."""

    CLARITY = 7
    DEPTH = 6
    OPENNESS = 7
    TRUST = 6
    TRUST_QUALITY = 7
    HELPFULNESS = 7
    PERCENTILE_RANKING = 75

    PEER_AVERAGES = {
        "department": {"avg_well_being": 6.5, "avg_stress": 5.2},
        "role": {"avg_well_being": 6.8, "avg_stress": 4.9},
        "experience": {"avg_well_being": 7.1, "avg_stress": 4.5},
    }
    INDUSTRY_AVERAGE = {"well_being": 6.5, "stress": 5.0, "satisfaction": 6.8}
    BEST_PRACTICES = ["regular_check_ins", "stress_management_training", "work_life_balance"]

    # Effectiveness ----------------------------------------------------------

    def clarity_score(self, data) -> float:
        return self.CLARITY

    def depth_score(self, data) -> float:
        return self.DEPTH

    def openness_score(self, data) -> float:
        return self.OPENNESS

    def trust_score(self, data) -> float:
        return self.TRUST

    def quality_trust(self, data) -> float:
        return self.TRUST_QUALITY

    def helpfulness_fallback(self) -> float:
        return self.HELPFULNESS

    # Engagement estimates for text conversations ----------------------------

    def pause_frequency(self, answer_gaps: int) -> float:
        return round(answer_gaps * 0.3, 2)

    def interruption_count(self, answer_gaps: int) -> int:
        return math.floor(answer_gaps * 0.1)

    def hesitation_count(self, answer_gaps: int) -> int:
        return math.floor(answer_gaps * 0.2)

    # Historical / comparative ----------------------------------------------

    def progress_indicators(self, history: List) -> ProgressIndicators:
        return ProgressIndicators(
            emotional_growth=6,
            stress_management=7,
            self_awareness=6,
            coping_strategies=5,
        )

    def peer_averages(self, profile: Optional[UserProfile]) -> Dict[str, Dict[str, float]]:
        return {key: dict(values) for key, values in self.PEER_AVERAGES.items()}

    def percentile_ranking(self, metrics, peer_averages: Dict[str, Dict[str, float]]) -> float:
        return self.PERCENTILE_RANKING

    def industry_average(self) -> Dict[str, float]:
        return dict(self.INDUSTRY_AVERAGE)

    def best_practices(self) -> List[str]:
        return list(self.BEST_PRACTICES)
