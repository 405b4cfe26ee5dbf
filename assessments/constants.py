from __future__ import annotations

from django.db import models


class Block(models.TextChoices):
    MASTER_DATA = "master_data", "Master Data"
    PROCESS = "process", "Process"
    SOFT_SKILL = "soft_skill", "Soft Skill"
    SAP_ACTIVATE = "sap_activate", "SAP Activate"
    CLEAN_CORE = "clean_core", "Clean Core"


class SeniorityLevel(models.TextChoices):
    JUNIOR = "junior", "Junior"
    PLENO = "pleno", "Mid (Pleno)"
    SENIOR = "senior", "Senior"


class DeploymentType(models.TextChoices):
    PRIVATE_CLOUD = "private_cloud", "S/4HANA Private Cloud"
    PUBLIC_CLOUD = "public_cloud", "S/4HANA Public Cloud"


class CandidateStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In progress"
    COMPLETED = "completed", "Completed"


class ModuleCategory(models.TextChoices):
    TECHNICAL = "technical", "Technical"
    FUNCTIONAL = "functional", "Functional"
    MANAGEMENT = "management", "Management"


# Accepted spellings for blocks coming back from the generator, keyed lowercase
# with spaces, dashes and underscores removed.
BLOCK_ALIASES = {
    "masterdata": Block.MASTER_DATA,
    "dadosmestres": Block.MASTER_DATA,
    "process": Block.PROCESS,
    "processes": Block.PROCESS,
    "processo": Block.PROCESS,
    "softskill": Block.SOFT_SKILL,
    "softskills": Block.SOFT_SKILL,
    "sapactivate": Block.SAP_ACTIVATE,
    "activate": Block.SAP_ACTIVATE,
    "cleancore": Block.CLEAN_CORE,
}


def parse_block(value) -> Block:
    """
    Map a generator-supplied block label onto the closed ``Block`` enumeration.

    Raises:
        ValueError: If the value does not name one of the five blocks.
    """
    if isinstance(value, Block):
        return value
    key = "".join(ch for ch in str(value or "").lower() if ch.isalnum())
    if key in BLOCK_ALIASES:
        return BLOCK_ALIASES[key]
    raise ValueError(f"Unknown block: {value!r}")


SCORE_SCALE = 50.0
BLOCK_SCALE = 10.0

APPROVAL_THRESHOLDS = {
    SeniorityLevel.JUNIOR: 25.0,
    SeniorityLevel.PLENO: 35.0,
    SeniorityLevel.SENIOR: 42.5,
}
DEFAULT_APPROVAL_THRESHOLD = APPROVAL_THRESHOLDS[SeniorityLevel.PLENO]

DEFAULT_BLOCK_COUNTS = {block: 5 for block in Block}

# Share of each block filled from the question bank before generating the rest
BANK_SHARE = 0.8

# Per-module block weights applied when assembling from the bank
BLOCK_WEIGHTS = {
    "abap": {
        Block.CLEAN_CORE: 2.5,
        Block.SAP_ACTIVATE: 1.5,
        Block.PROCESS: 1.0,
        Block.MASTER_DATA: 1.0,
        Block.SOFT_SKILL: 1.0,
    },
    "btp": {
        Block.CLEAN_CORE: 2.0,
        Block.SAP_ACTIVATE: 1.5,
        Block.PROCESS: 1.0,
        Block.MASTER_DATA: 1.2,
        Block.SOFT_SKILL: 1.0,
    },
    "pmgt": {
        Block.SAP_ACTIVATE: 2.5,
        Block.SOFT_SKILL: 2.0,
        Block.PROCESS: 1.5,
        Block.CLEAN_CORE: 1.0,
        Block.MASTER_DATA: 1.0,
    },
    "default": {
        Block.PROCESS: 2.0,
        Block.MASTER_DATA: 1.5,
        Block.SOFT_SKILL: 1.0,
        Block.SAP_ACTIVATE: 1.0,
        Block.CLEAN_CORE: 1.0,
    },
}


def block_weight(module_id: str, block: str) -> float:
    weights = BLOCK_WEIGHTS.get(module_id, BLOCK_WEIGHTS["default"])
    return weights.get(block, 1.0)


CROSS_INDUSTRY = "cross"

DEFAULT_MODULES = [
    ("abap", "ABAP", ModuleCategory.TECHNICAL),
    ("cpi", "CPI", ModuleCategory.TECHNICAL),
    ("pi", "PI/PO", ModuleCategory.TECHNICAL),
    ("btp", "BTP", ModuleCategory.TECHNICAL),
    ("fi", "FI", ModuleCategory.FUNCTIONAL),
    ("co", "CO", ModuleCategory.FUNCTIONAL),
    ("ps", "PS", ModuleCategory.FUNCTIONAL),
    ("sd", "SD", ModuleCategory.FUNCTIONAL),
    ("mm", "MM", ModuleCategory.FUNCTIONAL),
    ("ewm", "EWM", ModuleCategory.FUNCTIONAL),
    ("pp", "PP", ModuleCategory.FUNCTIONAL),
    ("pm", "PM", ModuleCategory.FUNCTIONAL),
    ("qm", "QM", ModuleCategory.FUNCTIONAL),
    ("pmgt", "Project Management", ModuleCategory.MANAGEMENT),
]

DEFAULT_INDUSTRIES = [
    (CROSS_INDUSTRY, "Cross Industry"),
    ("pharma", "Pharma"),
    ("retail", "Retail"),
    ("fashion", "Fashion"),
    ("prof_serv", "Professional Service"),
    ("food", "Food Industry"),
]
