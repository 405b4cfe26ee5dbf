"""
Immutable question and case-study value objects.

These are the units embedded in an ``AssessmentTemplate`` snapshot. They are
validated once on construction and never mutated afterwards; re-weighting
produces a new object.
"""
from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field

from .constants import Block, parse_block
from .exceptions import InvalidQuestion


def new_question_id(prefix: str = "q") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    options: tuple[str, ...]
    correct_answer_index: int
    block: Block
    seniority: str = ""
    industry: str = ""
    module: str = ""
    deployment_type: str = ""
    weight: float = 1.0
    explanation: str = ""

    def __post_init__(self):
        if not self.id:
            raise InvalidQuestion("Question id is required")
        if not str(self.text or "").strip():
            raise InvalidQuestion(f"Question {self.id} has no text")

        options = tuple(str(option) for option in (self.options or ()))
        if len(options) < 2:
            raise InvalidQuestion(f"Question {self.id} needs at least 2 options")
        object.__setattr__(self, "options", options)

        index = self.correct_answer_index
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidQuestion(f"Question {self.id} has a non-integer answer index")
        if not 0 <= index < len(options):
            raise InvalidQuestion(
                f"Question {self.id} answer index {index} is outside its options"
            )

        try:
            object.__setattr__(self, "block", parse_block(self.block))
        except ValueError as exc:
            raise InvalidQuestion(str(exc)) from exc

        weight = 1.0 if self.weight is None else self.weight
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            raise InvalidQuestion(f"Question {self.id} has an invalid weight")
        if weight <= 0:
            raise InvalidQuestion(f"Question {self.id} weight must be positive")
        object.__setattr__(self, "weight", weight)

    def is_correct(self, selected) -> bool:
        return selected == self.correct_answer_index

    def with_weight(self, weight: float) -> "Question":
        return dataclasses.replace(self, weight=weight)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "correct_answer_index": self.correct_answer_index,
            "block": self.block.value,
            "seniority": self.seniority,
            "industry": self.industry,
            "module": self.module,
            "deployment_type": self.deployment_type,
            "weight": self.weight,
            "explanation": self.explanation,
        }

    def to_public_dict(self) -> dict:
        """Candidate-facing view without the answer key."""
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "block": self.block.value,
            "block_label": self.block.label,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        if not isinstance(data, dict):
            raise InvalidQuestion("Question payload must be an object")
        try:
            return cls(
                id=data["id"],
                text=data["text"],
                options=tuple(data["options"]),
                correct_answer_index=data["correct_answer_index"],
                block=data["block"],
                seniority=data.get("seniority", ""),
                industry=data.get("industry", ""),
                module=data.get("module", ""),
                deployment_type=data.get("deployment_type", ""),
                weight=data.get("weight", 1.0),
                explanation=data.get("explanation") or "",
            )
        except (KeyError, TypeError) as exc:
            raise InvalidQuestion(f"Malformed question payload: {exc}") from exc


@dataclass(frozen=True)
class RubricCriterion:
    criterion: str
    points: str

    def to_dict(self) -> dict:
        return {"criterion": self.criterion, "points": self.points}


@dataclass(frozen=True)
class Scenario:
    """Open-ended case study. The rubric guides a human or AI reviewer only."""

    id: str
    module_id: str
    level: str
    industry: str
    title: str
    description: str
    guidelines: str = ""
    rubric: tuple[RubricCriterion, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not str(self.title or "").strip() or not str(self.description or "").strip():
            raise InvalidQuestion("Scenario needs a title and a description")
        rubric = tuple(
            item if isinstance(item, RubricCriterion) else RubricCriterion(
                criterion=str(item.get("criterion", "")),
                points=str(item.get("points", "")),
            )
            for item in (self.rubric or ())
        )
        object.__setattr__(self, "rubric", rubric)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "module_id": self.module_id,
            "level": self.level,
            "industry": self.industry,
            "title": self.title,
            "description": self.description,
            "guidelines": self.guidelines,
            "rubric": [item.to_dict() for item in self.rubric],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Scenario":
        if not isinstance(data, dict):
            raise InvalidQuestion("Scenario payload must be an object")
        try:
            return cls(
                id=data["id"],
                module_id=data.get("module_id", ""),
                level=data.get("level", ""),
                industry=data.get("industry", ""),
                title=data["title"],
                description=data["description"],
                guidelines=data.get("guidelines") or "",
                rubric=tuple(data.get("rubric") or ()),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise InvalidQuestion(f"Malformed scenario payload: {exc}") from exc
