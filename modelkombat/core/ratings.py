"""
Rating Aggregation and Preference Tracking
==========================================

Folds user feedback on model responses (1-5 star ratings, winner picks) into
per-model statistics, and ranks models for a user from that history.

Everything here is a pure function of the rating records passed in. Statistics
are recomputed on read and never stored on their own, so they cannot drift from
the ratings they summarise.

Key Components:
- ``ResponseRating`` / ``RatingStats``: minimal rating record and its aggregate
- ``ResponseJudgment`` / ``ModelStats``: full judgment history with per-category
  breakdown, used for ranking and recommendations
- Question helpers: stable hash and keyword-based category for grouping judgments

Note:
    At most one winner per comparison group is assumed to be enforced by the
    caller. Nothing here checks it.

Author: Model Kombat Project
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from modelkombat.core import config

# ============================================================================
# BASIC RATING AGGREGATION
# ============================================================================


@dataclass
class ResponseRating:
    """Feedback on one response: ``rating`` is 1-5 or None when unrated."""
    model_id: str
    rating: Optional[int] = None
    is_winner: bool = False


@dataclass
class RatingStats:
    average_rating: Optional[float] = None
    total_ratings: int = 0
    win_count: int = 0
    total_responses: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_responses == 0:
            return 0.0
        return self.win_count / self.total_responses


def aggregate_ratings(ratings: Iterable[ResponseRating]) -> RatingStats:
    """
    Summarise a model's rating history.

    Unrated responses count towards ``total_responses`` (and so the win rate) but
    not towards the average. An empty history is valid and yields zero counts with
    no average.
    """
    stats = RatingStats()
    rating_sum = 0
    for r in ratings:
        stats.total_responses += 1
        if r.is_winner:
            stats.win_count += 1
        if r.rating is not None:
            stats.total_ratings += 1
            rating_sum += r.rating
    if stats.total_ratings:
        stats.average_rating = rating_sum / stats.total_ratings
    return stats


def aggregate_by_model(ratings: Iterable[ResponseRating]) -> Dict[str, RatingStats]:
    grouped: Dict[str, List[ResponseRating]] = {}
    for r in ratings:
        grouped.setdefault(r.model_id, []).append(r)
    return {model_id: aggregate_ratings(items) for model_id, items in grouped.items()}


# ============================================================================
# QUESTION GROUPING
# ============================================================================

# Checked in order; the first matching category wins
QUESTION_CATEGORIES = [
    ("coding", re.compile(r"code|programming|debug|function|algorithm|python|javascript|typescript")),
    ("writing", re.compile(r"write|essay|story|article|blog|creative")),
    ("explanation", re.compile(r"explain|what is|how does|why|science|theory")),
    ("analysis", re.compile(r"analyze|compare|evaluate|review")),
    ("summarization", re.compile(r"summarize|summary|tldr|brief")),
    ("translation", re.compile(r"translate|language")),
    ("math", re.compile(r"math|calculate|solve|equation")),
]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def hash_question(question: str) -> str:
    """Stable short hash of a question, ignoring case and surrounding whitespace."""
    value = 0
    for ch in question.strip().lower():
        value = ((value << 5) - value + ord(ch)) & 0xFFFFFFFF
    # Interpret as signed 32-bit, then take the magnitude
    if value & 0x80000000:
        value -= 0x100000000
    value = abs(value)

    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def categorize_question(question: str) -> str:
    lower = question.lower()
    for category, pattern in QUESTION_CATEGORIES:
        if pattern.search(lower):
            return category
    return "general"


# ============================================================================
# JUDGMENT HISTORY
# ============================================================================


@dataclass
class ResponseJudgment:
    """
    A user's judgment of one model response.

    Attributes:
        user_id: Who judged
        model_id: Model that produced the response
        model_name: Display name at judgment time
        question_hash: ``hash_question`` of the prompt, groups related judgments
        question_category: ``categorize_question`` of the prompt
        rating: 1-5 stars, clamped on construction through ``build_judgments``
        is_winner: Picked as the best response of its comparison group
        response_time: Generation time in milliseconds
        feedback: Optional free text
        timestamp: When the judgment was made (UTC)
    """
    user_id: str
    model_id: str
    model_name: str
    question_hash: str
    question_category: str
    rating: int
    is_winner: bool = False
    response_time: Optional[float] = None
    feedback: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def id(self) -> str:
        return f"{self.user_id}_{self.model_id}_{int(self.timestamp.timestamp() * 1000)}"


def clamp_rating(rating: int) -> int:
    return max(1, min(5, int(rating)))


def build_judgments(user_id: str, question: str, entries: Sequence[Dict]) -> List[ResponseJudgment]:
    """
    Build judgment records for one comparison (e.g. every round of a refinement run).

    Args:
        user_id: The judging user.
        question: The prompt all entries answered.
        entries: Dicts with ``model_id``, ``model_name``, ``rating`` and optionally
            ``is_winner``, ``response_time`` and ``feedback``.
    """
    question_hash = hash_question(question)
    category = categorize_question(question)
    now = datetime.now(timezone.utc)
    return [
        ResponseJudgment(
            user_id=user_id,
            model_id=e["model_id"],
            model_name=e.get("model_name") or e["model_id"],
            question_hash=question_hash,
            question_category=category,
            rating=clamp_rating(e["rating"]),
            is_winner=bool(e.get("is_winner", False)),
            response_time=e.get("response_time"),
            feedback=e.get("feedback"),
            timestamp=now,
        )
        for e in entries
    ]


@dataclass
class CategoryStats:
    count: int = 0
    average_rating: float = 0.0


@dataclass
class ModelStats:
    model_id: str
    model_name: str
    total_ratings: int = 0
    average_rating: float = 0.0
    win_count: int = 0
    total_responses: int = 0
    average_response_time: Optional[float] = None
    last_used: Optional[datetime] = None
    categories: Dict[str, CategoryStats] = field(default_factory=dict)

    @property
    def win_rate(self) -> float:
        if self.total_responses == 0:
            return 0.0
        return self.win_count / self.total_responses


def build_model_stats(judgments: Iterable[ResponseJudgment]) -> Dict[str, ModelStats]:
    """Per-model statistics over a judgment history, keyed by model id."""
    stats_by_model: Dict[str, ModelStats] = {}
    rating_sums: Dict[str, int] = {}
    time_samples: Dict[str, List[float]] = {}

    for j in judgments:
        stats = stats_by_model.get(j.model_id)
        if stats is None:
            stats = ModelStats(model_id=j.model_id, model_name=j.model_name)
            stats_by_model[j.model_id] = stats
            rating_sums[j.model_id] = 0
            time_samples[j.model_id] = []

        stats.total_responses += 1
        stats.total_ratings += 1
        rating_sums[j.model_id] += j.rating
        stats.average_rating = rating_sums[j.model_id] / stats.total_ratings
        if j.is_winner:
            stats.win_count += 1

        if j.response_time:
            time_samples[j.model_id].append(j.response_time)
            samples = time_samples[j.model_id]
            stats.average_response_time = sum(samples) / len(samples)

        if j.question_category:
            cat = stats.categories.setdefault(j.question_category, CategoryStats())
            cat.count += 1
            cat.average_rating += (j.rating - cat.average_rating) / cat.count

        if stats.last_used is None or j.timestamp > stats.last_used:
            stats.last_used = j.timestamp

    return stats_by_model


def composite_score(stats: ModelStats) -> float:
    """Overall preference score on a 0-5 scale: 70% rating, 30% win rate."""
    return stats.average_rating * 0.7 + stats.win_rate * 5 * 0.3


def top_models(judgments: Iterable[ResponseJudgment], limit: int = config.TOP_MODELS_LIMIT) -> List[ModelStats]:
    """The user's best models by ``composite_score``, best first."""
    ranked = sorted(build_model_stats(judgments).values(), key=composite_score, reverse=True)
    return ranked[:limit]


def favorite_model_ids(judgments: Iterable[ResponseJudgment]) -> List[str]:
    ranked = sorted(build_model_stats(judgments).values(), key=composite_score, reverse=True)
    return [s.model_id for s in ranked]


def recommend_models(
    judgments: Sequence[ResponseJudgment],
    question: str,
    available_model_ids: Sequence[str],
) -> List[str]:
    """
    Order ``available_model_ids`` by how well they served this user before.

    With fewer than ``config.MIN_JUDGMENTS_FOR_RECOMMENDATION`` judgments the input
    order is returned unchanged. Models without history score 0 and sort last, in
    input order.
    """
    if len(judgments) < config.MIN_JUDGMENTS_FOR_RECOMMENDATION:
        return list(available_model_ids)

    stats_by_model = build_model_stats(judgments)
    category = categorize_question(question)

    def score(model_id: str) -> float:
        stats = stats_by_model.get(model_id)
        if stats is None:
            return 0.0
        value = stats.average_rating * 0.6 + stats.win_rate * 5 * 0.4
        cat = stats.categories.get(category)
        if cat is not None:
            value = value * 0.7 + cat.average_rating * 0.3
        return value

    return sorted(available_model_ids, key=score, reverse=True)
