from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from django.conf import settings
from django.core.mail import send_mail
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from . import generation
from .approval import Approval, evaluate
from .composer import (
    assemble_questions,
    bank_questions,
    bank_scenario,
    compose_template,
    default_template_name,
    resolve_scenario,
)
from .constants import DEFAULT_BLOCK_COUNTS, Block, CandidateStatus, DeploymentType
from .exceptions import DuplicateSubmission, GenerationFailure, PersistenceFailure
from .models import AssessmentResult, AssessmentTemplate, Candidate
from .questions import Question
from .scoring import ScoreCard, score_template

logger = logging.getLogger(__name__)


@dataclass
class CandidateAssessment:
    candidate: Candidate
    template: AssessmentTemplate


@dataclass
class CandidateReport:
    candidate: Candidate
    result: AssessmentResult
    approval: Approval
    chart: list[dict]


@dataclass
class BankPack:
    template: AssessmentTemplate
    questions: list[Question]


# ---------------------------------------------------------------------------
# Composition write path
# ---------------------------------------------------------------------------

def save_template(template: AssessmentTemplate) -> AssessmentTemplate:
    try:
        template.save()
    except DatabaseError as exc:
        logger.error("Failed to save template %s: %s", template.uuid, exc)
        raise PersistenceFailure("template", str(exc)) from exc
    return template


def enroll_candidate(
    template: AssessmentTemplate,
    *,
    name: str,
    email: str,
    job_context: str = "",
) -> Candidate:
    """
    Create a pending candidate bound to an already saved template.

    This is the retriable second step of ``create_candidate_assessment``.
    """
    if template.pk is None:
        raise ValueError("Template must be saved before enrolling a candidate")
    try:
        return Candidate.objects.create(
            name=name.strip(),
            email=email.strip().lower(),
            applied_module=template.module,
            applied_industry=template.industry,
            applied_level=template.level,
            deployment_type=template.deployment_type,
            job_context=job_context,
            template=template,
        )
    except DatabaseError as exc:
        logger.error("Failed to save candidate for template %s: %s", template.uuid, exc)
        raise PersistenceFailure("candidate", str(exc), template=template) from exc


def _generate(callable_, *args):
    """Call a content generator, reporting any failure of the call as ``GenerationFailure``."""
    try:
        return callable_(*args)
    except GenerationFailure:
        raise
    except Exception as exc:
        raise GenerationFailure(str(exc)) from exc


def _generated_questions(*args):
    return _generate(generation.generate_questions, *args)


def _generated_scenario(*args):
    return _generate(generation.generate_scenario, *args)


def create_candidate_assessment(
    *,
    name: str,
    email: str,
    module_id: str,
    industry_id: str,
    level: str,
    deployment_type: str,
    include_scenario: bool = True,
    block_counts: Mapping | None = None,
    job_context: str = "",
    use_question_bank: bool = False,
) -> CandidateAssessment:
    """
    Generate a fresh template for a candidate and enroll them against it.

    Generation and composition happen before any write, so a generation
    failure leaves the store untouched. A newly generated scenario is banked,
    then the template is saved, then the candidate; if the candidate write
    fails the template stays and ``PersistenceFailure.template`` can be passed
    to ``enroll_candidate`` to retry.

    Raises:
        GenerationFailure: If questions or the scenario could not be generated
        PersistenceFailure: If the scenario, template or candidate write failed
    """
    block_counts = {Block(block): int(count) for block, count in (block_counts or DEFAULT_BLOCK_COUNTS).items()}

    if use_question_bank:
        questions = assemble_questions(
            module_id=module_id,
            industry_id=industry_id,
            level=level,
            deployment_type=deployment_type,
            block_counts=block_counts,
            context_text=job_context,
            generator=_generated_questions,
        )
    else:
        questions = _generated_questions(
            module_id, industry_id, level, deployment_type, block_counts, job_context
        )

    scenario, new_scenario = None, False
    if include_scenario:
        scenario, new_scenario = resolve_scenario(
            module_id=module_id,
            level=level,
            industry_id=industry_id,
            deployment_type=deployment_type,
            generator=_generated_scenario,
        )

    template = compose_template(
        module_id=module_id,
        industry_id=industry_id,
        level=level,
        deployment_type=deployment_type,
        block_counts=block_counts,
        include_scenario=include_scenario,
        generated_questions=questions,
        generated_scenario=scenario,
    )
    if new_scenario:
        template.scenarios = [
            bank_scenario(scenario, deployment_type=deployment_type).to_dict()
        ]
    save_template(template)
    candidate = enroll_candidate(
        template, name=name, email=email, job_context=job_context
    )
    logger.info(
        "Created candidate %s with template %s (%s questions)",
        candidate.uuid, template.uuid, template.question_count(),
    )
    return CandidateAssessment(candidate=candidate, template=template)


def generate_bank_pack(
    *,
    module_id: str,
    industry_id: str,
    level: str,
    deployment_type: str,
    block_counts: Mapping | None = None,
    include_scenario: bool = False,
) -> BankPack:
    """
    Generate questions into the question bank and save them as a standalone template.

    The template is not assigned to anyone; operators use it as a reusable
    pack. Bank rows, the scenario and the template are written in one
    transaction, so a failed write leaves none of them behind.

    Raises:
        GenerationFailure: If questions or the scenario could not be generated
        PersistenceFailure: If a bank or template write failed
    """
    block_counts = {Block(block): int(count) for block, count in (block_counts or DEFAULT_BLOCK_COUNTS).items()}
    questions = _generated_questions(
        module_id, industry_id, level, deployment_type, block_counts, ""
    )

    scenario, new_scenario = None, False
    if include_scenario:
        scenario, new_scenario = resolve_scenario(
            module_id=module_id,
            level=level,
            industry_id=industry_id,
            deployment_type=deployment_type,
            generator=_generated_scenario,
        )

    name = f"{default_template_name(module_id, level)} ({DeploymentType(deployment_type).label})"
    template = compose_template(
        module_id=module_id,
        industry_id=industry_id,
        level=level,
        deployment_type=deployment_type,
        block_counts=block_counts,
        include_scenario=include_scenario,
        generated_questions=questions,
        generated_scenario=scenario,
        name=name,
    )

    with transaction.atomic():
        banked = bank_questions(questions)
        template.questions = [question.to_dict() for question in banked]
        if new_scenario:
            template.scenarios = [
                bank_scenario(scenario, deployment_type=deployment_type).to_dict()
            ]
        save_template(template)

    logger.info(
        "Banked %s generated question(s) for %s %s as template %s",
        len(banked), module_id, level, template.uuid,
    )
    return BankPack(template=template, questions=banked)


# ---------------------------------------------------------------------------
# Scoring write path
# ---------------------------------------------------------------------------

def record_result(
    candidate: Candidate,
    template: AssessmentTemplate,
    scorecard: ScoreCard,
    *,
    finish_reason: str = AssessmentResult.REASON_COMPLETED,
    scenario_response: str = "",
) -> AssessmentResult:
    """
    Persist a score card as the candidate's single result.

    Raises:
        DuplicateSubmission: If a result already exists for the candidate
        PersistenceFailure: If the write failed for any other reason
    """
    try:
        with transaction.atomic():
            return AssessmentResult.objects.create(
                candidate=candidate,
                template=template,
                score=scorecard.score,
                block_scores=dict(scorecard.block_scores),
                answers=[detail.to_dict() for detail in scorecard.answers],
                finish_reason=finish_reason,
                scenario_response=scenario_response or "",
                report_sent_to=getattr(settings, "ASSESSMENT_REPORT_RECIPIENT", ""),
                completed_at=timezone.now(),
            )
    except IntegrityError as exc:
        existing = AssessmentResult.objects.filter(candidate=candidate).first()
        if existing is not None:
            raise DuplicateSubmission(existing) from exc
        raise PersistenceFailure("result", str(exc)) from exc
    except DatabaseError as exc:
        logger.error("Failed to save result for candidate %s: %s", candidate.uuid, exc)
        raise PersistenceFailure("result", str(exc)) from exc


def mark_candidate_completed(candidate: Candidate) -> bool:
    """
    Flip the candidate to completed. Returns True only for the call that flipped it.

    Raises:
        PersistenceFailure: If the status update failed
    """
    try:
        with transaction.atomic():
            updated = (
                Candidate.objects.filter(pk=candidate.pk)
                .exclude(status=CandidateStatus.COMPLETED)
                .update(status=CandidateStatus.COMPLETED, updated_at=timezone.now())
            )
    except DatabaseError as exc:
        logger.error("Failed to mark candidate %s completed: %s", candidate.uuid, exc)
        raise PersistenceFailure("candidate status", str(exc)) from exc
    candidate.status = CandidateStatus.COMPLETED
    return bool(updated)


def submit_assessment(
    candidate: Candidate,
    answers: Mapping[str, int | None],
    *,
    finish_reason: str = AssessmentResult.REASON_COMPLETED,
    scenario_response: str = "",
) -> AssessmentResult:
    """
    Score a candidate's answers and persist the result, then mark them completed.

    A second submission for the same candidate is a no-op that returns the
    existing result; it only re-applies the status flip if an earlier attempt
    failed after the result was written.

    Raises:
        InvalidTemplate: If the candidate's template has no questions
        PersistenceFailure: If the result or status write failed
    """
    try:
        result = record_submission(
            candidate,
            answers,
            finish_reason=finish_reason,
            scenario_response=scenario_response,
        )
    except DuplicateSubmission as exc:
        logger.info("Duplicate submission for candidate %s ignored", candidate.uuid)
        mark_candidate_completed(candidate)
        return exc.result

    complete_submission(result)
    return result


def record_submission(
    candidate: Candidate,
    answers: Mapping[str, int | None],
    *,
    finish_reason: str = AssessmentResult.REASON_COMPLETED,
    scenario_response: str = "",
) -> AssessmentResult:
    """
    Score and store a result without touching the candidate's status.

    Raises:
        DuplicateSubmission: If the candidate already has a result
        InvalidTemplate: If the candidate's template has no questions
        PersistenceFailure: If the result write failed
    """
    existing = AssessmentResult.objects.filter(candidate=candidate).first()
    if existing is not None:
        raise DuplicateSubmission(existing)

    scorecard = score_template(candidate.template, answers)
    result = record_result(
        candidate,
        candidate.template,
        scorecard,
        finish_reason=finish_reason,
        scenario_response=scenario_response,
    )
    logger.info(
        "Scored candidate %s: %.2f/50 (%s, %s/%s answered)",
        candidate.uuid,
        result.score,
        finish_reason,
        scorecard.answered_count,
        len(scorecard.answers),
    )
    return result


def complete_submission(result: AssessmentResult) -> None:
    """Flip the candidate to completed and send the report for a freshly stored result."""
    mark_candidate_completed(result.candidate)
    send_completion_notification(result)


def send_completion_notification(result: AssessmentResult) -> bool:
    """Email the scored result to the configured recipient. Never raises."""
    recipient = result.report_sent_to
    if not recipient:
        return False

    candidate = result.candidate
    approval = result.approval
    if not getattr(settings, "EMAIL_ENABLED", False):
        logger.info(
            "EMAIL_ENABLED is False. Result for %s: %.1f/50 (%s)",
            candidate.email,
            result.score,
            "approved" if approval.approved else "not recommended",
        )
        return True

    lines = [
        f"Candidate: {candidate.name} <{candidate.email}>",
        f"Profile: {candidate.applied_module.upper()} / {candidate.get_applied_level_display()}",
        f"Score: {result.score:.1f} / 50 (threshold {approval.threshold})",
        f"Verdict: {'Approved' if approval.approved else 'Not recommended'}",
        "",
    ]
    for row in block_chart(result.block_scores):
        lines.append(f"- {row['label']}: {row['score']} / 10")

    try:
        send_mail(
            f"Assessment completed: {candidate.name}",
            "\n".join(lines),
            getattr(settings, "DEFAULT_FROM_EMAIL", None),
            [recipient],
        )
        logger.info("Result report for %s sent to %s", candidate.email, recipient)
        return True
    except Exception as exc:
        logger.warning("Failed to send result report: %s", exc)
        return False


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def block_chart(block_scores: Mapping[str, float]) -> list[dict]:
    return [
        {
            "block": block.value,
            "label": block.label,
            "score": round(float((block_scores or {}).get(block.value) or 0), 1),
            "full_mark": 10,
        }
        for block in Block
    ]


def build_candidate_report(candidate: Candidate) -> CandidateReport | None:
    result = AssessmentResult.objects.filter(candidate=candidate).first()
    if result is None:
        return None
    return CandidateReport(
        candidate=candidate,
        result=result,
        approval=evaluate(candidate.applied_level, result.score),
        chart=block_chart(result.block_scores),
    )


def compare_candidates(candidates: Iterable[Candidate]) -> dict:
    """Side-by-side block scores; candidates without a result score 0."""
    candidates = list(candidates)
    results = {
        result.candidate_id: result
        for result in AssessmentResult.objects.filter(candidate__in=candidates)
    }

    rows = []
    for block in Block:
        row = {"block": block.value, "label": block.label}
        for candidate in candidates:
            result = results.get(candidate.pk)
            score = (result.block_scores or {}).get(block.value, 0) if result else 0
            row[str(candidate.uuid)] = round(float(score or 0), 1)
        rows.append(row)

    summary = []
    for candidate in candidates:
        result = results.get(candidate.pk)
        approval = evaluate(candidate.applied_level, result.score) if result else None
        summary.append(
            {
                "uuid": str(candidate.uuid),
                "name": candidate.name,
                "level": candidate.applied_level,
                "score": round(result.score, 2) if result else None,
                "approved": approval.approved if approval else None,
                "threshold": approval.threshold if approval else None,
            }
        )

    return {"blocks": rows, "candidates": summary}
