"""
AI content generation for assessment templates.

Wraps the Anthropic Messages API. Output is treated as untrusted: every item
is validated into a ``Question`` or ``Scenario`` and block labels are
normalized onto the closed block enumeration here, before anything reaches
the composer.
"""
from __future__ import annotations

import json
import logging

from django.conf import settings

from .constants import Block, DeploymentType, ModuleCategory, SeniorityLevel
from .exceptions import GenerationFailure, InvalidQuestion
from .questions import Question, Scenario, new_question_id

logger = logging.getLogger(__name__)

DEPLOYMENT_GUIDANCE = {
    DeploymentType.PUBLIC_CLOUD: (
        "Focus on standard processes and SAP Best Practices. Clean Core is mandatory: "
        "only public APIs, side-by-side (BTP) and key-user extensibility. SAP Activate "
        "is driven by Fit-to-Standard. Never suggest modifying standard code."
    ),
    DeploymentType.PRIVATE_CLOUD: (
        "Corporate flexibility while keeping the core stable: ABAP Cloud and on-stack "
        "extensibility are allowed, RISE with SAP, greenfield and brownfield "
        "migrations, keeping the system cloud-ready."
    ),
}


def _get_anthropic_client():
    api_key = getattr(settings, "ANTHROPIC_API_KEY", "")
    if not api_key:
        raise ValueError("ANTHROPIC_API_KEY not configured")
    import anthropic

    return anthropic.Anthropic(api_key=api_key)


def _get_model():
    return getattr(settings, "ANTHROPIC_MODEL", "claude-sonnet-4-20250514")


def _strip_code_fences(text: str) -> str:
    """Remove markdown code fences from Claude responses."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1])
    return text.strip()


def _module_category(module_id: str) -> str:
    from .models import SAPModule

    module = SAPModule.objects.filter(code=module_id).only("category").first()
    return module.category if module else ModuleCategory.FUNCTIONAL


def _profile_guidance(module_id: str) -> str:
    if module_id == "pmgt":
        return (
            "Profile: SAP project manager. Do not ask about functional transactions. "
            "Cover methodology, governance, stakeholders, risk, schedule and budget. "
            "Clean Core here means governance that avoids unnecessary customizing."
        )
    if _module_category(module_id) == ModuleCategory.TECHNICAL:
        return (
            f"Profile: technical consultant ({module_id.upper()}). Cover architecture, "
            "performance, BTP, integrations and APIs. Clean Core means RAP, OData and "
            "decoupled extensibility."
        )
    return (
        f"Profile: functional consultant ({module_id.upper()}). Cover the module's "
        "business processes and configuration. Clean Core means standard configuration "
        "and low-code extensions. Do not mix in other functional modules."
    )


def _complete(prompt: str, max_tokens: int = 8192) -> str:
    client = _get_anthropic_client()
    response = client.messages.create(
        model=_get_model(),
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": prompt}],
    )
    return _strip_code_fences(response.content[0].text)


def generate_questions(
    module_id: str,
    industry_id: str,
    level: str,
    deployment_type: str,
    counts_per_block: dict,
    context_text: str = "",
) -> list[Question]:
    """
    Generate multiple-choice questions distributed across blocks.

    Args:
        counts_per_block: mapping of block -> number of questions wanted
        context_text: optional job description to steer the questions

    Returns:
        list of validated Question objects with weight 1

    Raises:
        GenerationFailure: If the API call fails or returns empty/malformed data
    """
    counts = {Block(block): int(count) for block, count in counts_per_block.items() if count}
    total = sum(counts.values())
    if total <= 0:
        raise GenerationFailure("no questions requested")

    distribution = "\n".join(
        f"- {block.label}: exactly {count} question(s)" for block, count in counts.items()
    )
    context_block = f"\nJob context:\n{context_text}\n" if context_text else ""
    level_label = SeniorityLevel(level).label if level in SeniorityLevel.values else level

    prompt = f"""You are a senior SAP assessment author.
Write {total} multiple-choice questions for:
- Module: {module_id.upper()}
- Seniority: {level_label}
- Industry: {industry_id}
- Deployment: {DeploymentType(deployment_type).label if deployment_type in DeploymentType.values else deployment_type}

{DEPLOYMENT_GUIDANCE.get(deployment_type, "")}
{_profile_guidance(module_id)}
{context_block}
Block distribution:
{distribution}

Rules:
1. Exactly 4 options per question, only one correct.
2. Soft-skill questions use realistic project situations for the seniority level.
3. Include a short explanation of the correct answer.

Return ONLY a valid JSON array (no markdown, no extra text):
[
  {{
    "text": "The question",
    "options": ["A", "B", "C", "D"],
    "correct_answer_index": 1,
    "block": "Clean Core",
    "explanation": "Why option B is correct"
  }}
]"""

    try:
        response_text = _complete(prompt)
        payload = json.loads(response_text)
    except Exception as exc:
        logger.error("Question generation failed for %s/%s: %s", module_id, level, exc)
        raise GenerationFailure(str(exc)) from exc

    if not isinstance(payload, list) or not payload:
        raise GenerationFailure("generator returned no questions")

    questions = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise GenerationFailure(f"item {index} is not an object")
        try:
            questions.append(
                Question(
                    id=new_question_id("ai"),
                    text=item.get("text", ""),
                    options=tuple(item.get("options") or ()),
                    correct_answer_index=item.get(
                        "correct_answer_index", item.get("correctAnswerIndex")
                    ),
                    block=item.get("block"),
                    seniority=level,
                    industry=industry_id,
                    module=module_id,
                    deployment_type=deployment_type,
                    weight=1.0,
                    explanation=item.get("explanation") or "",
                )
            )
        except InvalidQuestion as exc:
            raise GenerationFailure(f"item {index}: {exc}") from exc

    logger.info(
        "Generated %s question(s) for %s %s (%s)",
        len(questions), module_id, level, deployment_type,
    )
    return questions


def generate_scenario(
    module_id: str,
    level: str,
    industry_id: str,
    deployment_type: str,
) -> Scenario:
    """
    Generate one open-ended case study with an evaluation rubric.

    Raises:
        GenerationFailure: If the API call fails or the payload is malformed
    """
    prompt = f"""You are a senior SAP assessment author.
Write one realistic case study for a {level} {module_id.upper()} consultant in the
{industry_id} industry on {deployment_type}.

{DEPLOYMENT_GUIDANCE.get(deployment_type, "")}

Return ONLY a valid JSON object (no markdown, no extra text):
{{
  "title": "Short title",
  "description": "The business situation the candidate must solve",
  "guidelines": "What a good answer should cover",
  "rubric": [{{"criterion": "Solution design", "points": "0-5"}}]
}}"""

    try:
        payload = json.loads(_complete(prompt, max_tokens=2048))
        return Scenario(
            id=new_question_id("scenario"),
            module_id=module_id,
            level=level,
            industry=industry_id,
            title=payload.get("title", ""),
            description=payload.get("description", ""),
            guidelines=payload.get("guidelines") or "",
            rubric=tuple(payload.get("rubric") or ()),
        )
    except Exception as exc:
        logger.error("Scenario generation failed for %s/%s: %s", module_id, level, exc)
        raise GenerationFailure(str(exc)) from exc
