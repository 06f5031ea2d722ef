"""
Adversarial refinement runs.

Each round asks one model to critique the current answer and then to rewrite it
addressing that critique. The model for round ``i`` comes from
``get_model_for_round(enabled_model_ids, i)``, so a run rotates through the
user's enabled models and is reproducible for the same enabled set.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from modelkombat.core import config
from modelkombat.core.errors import ValidationError
from modelkombat.core.model_selection import get_model_for_round
from modelkombat.core.ratings import RatingStats, ResponseRating, aggregate_by_model
from modelkombat.integrations.openrouter_client import OpenRouterClient

logger = logging.getLogger(__name__)

CRITIC_SYSTEM_PROMPT = "You are a critical reviewer providing constructive feedback."
REFINER_SYSTEM_PROMPT = "You are an expert assistant refining responses based on feedback."

CRITIQUE_TEMPLATE = """You are a critical reviewer. Analyze this response and provide specific, actionable feedback for improvement:

Response to critique:
\"\"\"
{answer}
\"\"\"

Provide a detailed critique focusing on:
1. Accuracy and factual correctness
2. Completeness and coverage
3. Clarity and structure
4. Relevance to the original request

Be specific and constructive. Format your critique as clear, numbered points."""

REFINE_TEMPLATE = """You are refining a response based on critical feedback. Here's the context:

Original request:
\"\"\"
{question}
\"\"\"

Previous response:
\"\"\"
{answer}
\"\"\"

Critique and feedback:
\"\"\"
{critique}
\"\"\"

Please provide an improved version of the response that addresses all the feedback points while maintaining accuracy and completeness."""

CRITIQUE_MAX_TOKENS = 500
REFINE_MAX_TOKENS = 1000
TEMPERATURE = 0.7


@dataclass
class RefinementRound:
    round_number: int
    model_id: str
    critique: str
    refined_answer: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rating: Optional[int] = None
    is_winner: bool = False

    def to_rating(self) -> ResponseRating:
        return ResponseRating(model_id=self.model_id, rating=self.rating, is_winner=self.is_winner)


@dataclass
class RefinementResult:
    question: str
    rounds: List[RefinementRound] = field(default_factory=list)

    @property
    def final_answer(self) -> str:
        return self.rounds[-1].refined_answer if self.rounds else self.question

    @property
    def model_ids(self) -> List[str]:
        return [r.model_id for r in self.rounds]

    def rate_round(self, round_number: int, rating: Optional[int] = None, is_winner: bool = False):
        """
        Record feedback for one round. Marking a winner clears the flag on every
        other round of the run.

        Raises:
            ValidationError: Unknown round or rating outside 1-5.
        """
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        matches = [r for r in self.rounds if r.round_number == round_number]
        if not matches:
            raise ValidationError(f"No round {round_number} in this refinement")

        target = matches[0]
        target.rating = rating
        if is_winner:
            for r in self.rounds:
                r.is_winner = False
        target.is_winner = is_winner

    def rating_stats(self) -> Dict[str, RatingStats]:
        """Per-model statistics over the rounds of this run."""
        return aggregate_by_model(r.to_rating() for r in self.rounds)


def run_refinement(
    client: OpenRouterClient,
    question: str,
    enabled_model_ids: Sequence[str],
    rounds: int = config.DEFAULT_REFINEMENT_ROUNDS,
) -> RefinementResult:
    """
    Refine ``question`` through ``rounds`` critique-and-rewrite rounds.

    Raises:
        ValidationError: Empty question or ``rounds`` outside [1, 10].
        CredentialError, NetworkError: From the OpenRouter client; rounds already
            completed are lost with the exception.
    """
    question = (question or "").strip()
    if not question:
        raise ValidationError("Please enter a prompt to refine")
    if not (config.MIN_REFINEMENT_ROUNDS <= rounds <= config.MAX_REFINEMENT_ROUNDS):
        raise ValidationError(
            f"Refinement rounds must be between {config.MIN_REFINEMENT_ROUNDS} and {config.MAX_REFINEMENT_ROUNDS}."
        )

    result = RefinementResult(question=question)
    answer = question

    for round_index in range(rounds):
        model_id = get_model_for_round(enabled_model_ids, round_index)
        logger.info(f"Refinement round {round_index + 1}/{rounds} with {model_id}")

        critique = client.create_chat_completion(
            model_id,
            [
                {"role": "system", "content": CRITIC_SYSTEM_PROMPT},
                {"role": "user", "content": CRITIQUE_TEMPLATE.format(answer=answer)},
            ],
            temperature=TEMPERATURE,
            max_tokens=CRITIQUE_MAX_TOKENS,
        ) or "No critique generated"

        refined = client.create_chat_completion(
            model_id,
            [
                {"role": "system", "content": REFINER_SYSTEM_PROMPT},
                {"role": "user", "content": REFINE_TEMPLATE.format(question=question, answer=answer, critique=critique)},
            ],
            temperature=TEMPERATURE,
            max_tokens=REFINE_MAX_TOKENS,
        ) or "No refined response generated"

        result.rounds.append(RefinementRound(
            round_number=round_index + 1,
            model_id=model_id,
            critique=critique,
            refined_answer=refined,
        ))
        answer = refined

    return result
