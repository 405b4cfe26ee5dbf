"""
Template composition.

``compose_template`` freezes already-generated questions into an unsaved
``AssessmentTemplate``. ``assemble_questions`` and ``resolve_scenario`` gather
the inputs from the question bank and the generator; ``bank_questions`` and
``bank_scenario`` store generated content for reuse.
"""
from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Callable, Sequence

from django.db import DatabaseError
from django.utils import timezone

from .constants import BANK_SHARE, CROSS_INDUSTRY, Block, SeniorityLevel, block_weight
from .exceptions import GenerationFailure, PersistenceFailure
from .models import AssessmentTemplate, BankQuestion, BankScenario
from .questions import Question, Scenario

logger = logging.getLogger(__name__)


def default_template_name(module_id: str, level: str) -> str:
    level_label = SeniorityLevel(level).label if level in SeniorityLevel.values else level
    return f"AI Pack: {module_id.upper()} {level_label}"


def compose_template(
    *,
    module_id: str,
    industry_id: str,
    level: str,
    deployment_type: str,
    block_counts: dict,
    include_scenario: bool,
    generated_questions: Sequence[Question] | None,
    generated_scenario: Scenario | None = None,
    name: str | None = None,
) -> AssessmentTemplate:
    """
    Freeze generated questions (and an optional scenario) into a new template.

    The template is returned unsaved with a fresh uuid and ``created_at`` set
    to now. Inputs are copied into the JSON snapshot, so later changes to them
    never reach the template.

    Raises:
        GenerationFailure: If there are no questions, a question is missing,
            or a requested scenario was not supplied
    """
    questions = list(generated_questions or [])
    if not questions:
        raise GenerationFailure("no questions to compose")
    for index, question in enumerate(questions):
        if not isinstance(question, Question):
            raise GenerationFailure(f"question {index} is missing or malformed")

    if include_scenario and not isinstance(generated_scenario, Scenario):
        raise GenerationFailure("scenario requested but none was generated")

    requested = {Block(block).value: int(count) for block, count in (block_counts or {}).items()}
    produced = Counter(question.block.value for question in questions)
    mismatched = {
        block: (count, produced.get(block, 0))
        for block, count in requested.items()
        if produced.get(block, 0) != count
    }
    if mismatched:
        logger.warning(
            "Composed %s %s template with block counts differing from request: %s",
            module_id, level, mismatched,
        )

    return AssessmentTemplate(
        name=name or default_template_name(module_id, level),
        module=module_id,
        industry=industry_id,
        level=level,
        deployment_type=deployment_type,
        questions=[question.to_dict() for question in questions],
        scenarios=[generated_scenario.to_dict()] if include_scenario else [],
        created_at=timezone.now(),
    )


def assemble_questions(
    *,
    module_id: str,
    industry_id: str,
    level: str,
    deployment_type: str,
    block_counts: dict,
    context_text: str = "",
    generator: Callable[..., list[Question]] | None = None,
    bank_share: float = BANK_SHARE,
    apply_module_weights: bool = True,
) -> list[Question]:
    """
    Build a question set bank-first, generating only what the bank cannot cover.

    For each block up to ``bank_share`` of the requested count is drawn at
    random from matching bank questions for the same seniority. The remainder
    is generated in a single call. With ``apply_module_weights`` every question
    takes its module's block weight.
    """
    if generator is None:
        from .generation import generate_questions as generator

    bank = BankQuestion.objects.matching(
        module=module_id, industry=industry_id, deployment_type=deployment_type
    ).filter(seniority=level)

    by_block: dict[Block, list[Question]] = {}
    missing: dict[Block, int] = {}
    for block, count in block_counts.items():
        block = Block(block)
        count = int(count)
        if count <= 0:
            continue
        pool = list(bank.filter(block=block))
        take = min(len(pool), int(count * bank_share))
        picked = [row.to_question() for row in random.sample(pool, take)]
        by_block[block] = picked
        if count - take > 0:
            missing[block] = count - take

    if missing:
        generated = generator(
            module_id, industry_id, level, deployment_type, missing, context_text
        )
        for question in generated:
            by_block.setdefault(question.block, []).append(question)

    questions = []
    for block in Block:
        for question in by_block.get(block, []):
            if apply_module_weights:
                question = question.with_weight(block_weight(module_id, block))
            questions.append(question)

    logger.info(
        "Assembled %s question(s) for %s %s; generated blocks: %s",
        len(questions), module_id, level, {b.value: n for b, n in missing.items()},
    )
    return questions


def find_bank_scenario(*, module_id: str, level: str, industry_id: str) -> Scenario | None:
    existing = BankScenario.objects.matching(
        module=module_id, level=level, industry=industry_id
    ).first()
    return existing.to_scenario() if existing is not None else None


def resolve_scenario(
    *,
    module_id: str,
    level: str,
    industry_id: str,
    deployment_type: str,
    generator: Callable[..., Scenario] | None = None,
) -> tuple[Scenario, bool]:
    """
    Reuse a bank scenario for this combination, or generate a new one.

    Nothing is written here. The flag is True for a newly generated scenario,
    which the caller stores with ``bank_scenario`` once composition succeeded.
    """
    existing = find_bank_scenario(module_id=module_id, level=level, industry_id=industry_id)
    if existing is not None:
        return existing, False

    if generator is None:
        from .generation import generate_scenario as generator

    return generator(module_id, level, industry_id, deployment_type), True


def bank_scenario(scenario: Scenario, *, deployment_type: str) -> Scenario:
    """
    Store a generated scenario so later templates for the same combination reuse it.

    Raises:
        PersistenceFailure: If the bank write failed
    """
    try:
        banked = BankScenario.objects.create(
            module=scenario.module_id,
            level=scenario.level,
            industry=scenario.industry,
            deployment_type=deployment_type,
            title=scenario.title,
            description=scenario.description,
            guidelines=scenario.guidelines,
            rubric=[item.to_dict() for item in scenario.rubric],
            ai_generated=True,
        )
    except DatabaseError as exc:
        logger.error("Failed to bank scenario '%s': %s", scenario.title, exc)
        raise PersistenceFailure("scenario", str(exc)) from exc
    return banked.to_scenario()


def bank_questions(questions: Sequence[Question]) -> list[Question]:
    """
    Store generated questions in the question bank.

    Returns the questions as read back from their bank rows, so a template
    composed from them shares the bank ids.

    Raises:
        PersistenceFailure: If a bank write failed
    """
    rows = []
    try:
        for question in questions:
            rows.append(
                BankQuestion.objects.create(
                    text=question.text,
                    options=list(question.options),
                    correct_answer_index=question.correct_answer_index,
                    block=question.block,
                    seniority=question.seniority,
                    industry=question.industry or CROSS_INDUSTRY,
                    module=question.module,
                    deployment_type=question.deployment_type,
                    weight=question.weight,
                    explanation=question.explanation,
                    ai_generated=True,
                )
            )
    except DatabaseError as exc:
        logger.error("Failed to bank generated questions: %s", exc)
        raise PersistenceFailure("bank", str(exc)) from exc
    return [row.to_question() for row in rows]
