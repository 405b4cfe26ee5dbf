"""
Scoring engine.

Pure functions: the same template and answers always give the same score
card. Nothing here touches the database; ``services.submit_assessment``
persists the outcome.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from .constants import BLOCK_SCALE, SCORE_SCALE, Block
from .exceptions import InvalidTemplate
from .questions import Question

OUTCOME_CORRECT = "correct"
OUTCOME_INCORRECT = "incorrect"
OUTCOME_UNANSWERED = "unanswered"

UNANSWERED = -1


@dataclass(frozen=True)
class AnswerDetail:
    question_id: str
    selected_option: int
    outcome: str
    block: Block
    weight: float

    @property
    def is_correct(self) -> bool:
        return self.outcome == OUTCOME_CORRECT

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "selected_option": self.selected_option,
            "is_correct": self.is_correct,
            "block": self.block.value,
            "outcome": self.outcome,
        }


@dataclass(frozen=True)
class ScoreCard:
    score: float
    block_scores: dict
    answers: tuple[AnswerDetail, ...]
    earned: float
    maximum: float

    @property
    def answered_count(self) -> int:
        return sum(1 for detail in self.answers if detail.outcome != OUTCOME_UNANSWERED)

    @property
    def correct_count(self) -> int:
        return sum(1 for detail in self.answers if detail.is_correct)


def normalize_selection(value) -> int:
    """Return the selected option index, or ``UNANSWERED``."""
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        return UNANSWERED
    if value < 0:
        return UNANSWERED
    return value


def score_answers(
    questions: Sequence[Question],
    answers: Mapping[str, int | None],
) -> ScoreCard:
    """
    Score recorded answers against an ordered question sequence.

    Returns:
        ScoreCard with the overall score on the 0-50 scale and a 0-10 score
        for every block (0 for blocks with no questions).

    Raises:
        InvalidTemplate: If there are no questions to score.
    """
    if not questions:
        raise InvalidTemplate("Template has no questions to score")

    answers = answers or {}
    block_earned = {block: 0.0 for block in Block}
    block_max = {block: 0.0 for block in Block}
    earned_total = 0.0
    max_total = 0.0
    details = []

    for question in questions:
        weight = question.weight if question.weight is not None else 1.0
        selected = normalize_selection(answers.get(question.id))

        block_max[question.block] += weight
        max_total += weight

        if selected == UNANSWERED:
            outcome = OUTCOME_UNANSWERED
        elif question.is_correct(selected):
            outcome = OUTCOME_CORRECT
            block_earned[question.block] += weight
            earned_total += weight
        else:
            outcome = OUTCOME_INCORRECT

        details.append(
            AnswerDetail(
                question_id=question.id,
                selected_option=selected,
                outcome=outcome,
                block=question.block,
                weight=weight,
            )
        )

    if max_total <= 0:
        raise InvalidTemplate("Template has no scoreable weight")

    block_scores = {}
    for block in Block:
        if block_max[block] > 0:
            block_scores[block.value] = block_earned[block] / block_max[block] * BLOCK_SCALE
        else:
            block_scores[block.value] = 0.0

    return ScoreCard(
        score=earned_total / max_total * SCORE_SCALE,
        block_scores=block_scores,
        answers=tuple(details),
        earned=earned_total,
        maximum=max_total,
    )


def score_template(template, answers: Mapping[str, int | None]) -> ScoreCard:
    """Score answers against an ``AssessmentTemplate`` (or anything with ``question_set``)."""
    return score_answers(template.question_set, answers)
