"""Approval chain definitions shared by the workflow engine and reporting.

The order of ``STAGE_ORDER`` is the approval order. Everything that needs to
know "what comes next" or "has this application reached stage X" goes through
the helpers below instead of comparing raw strings.
"""

from __future__ import annotations

from enum import Enum


WORKFLOW_VERSION = 1


class Stage(str, Enum):
    FIELD_OFFICER = "field_officer"
    MANAGER = "manager"
    DIRECTOR = "director"
    CHAIRPERSON = "chairperson"
    CEO = "ceo"

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.FIELD_OFFICER,
    Stage.MANAGER,
    Stage.DIRECTOR,
    Stage.CHAIRPERSON,
    Stage.CEO,
)

STAGE_LABELS: dict[Stage, str] = {
    Stage.FIELD_OFFICER: "Field Officer",
    Stage.MANAGER: "Manager",
    Stage.DIRECTOR: "Director",
    Stage.CHAIRPERSON: "Chairperson",
    Stage.CEO: "CEO",
}

# Roles that receive a weekly report; the field officer stage is the intake step.
REPORT_STAGES: tuple[Stage, ...] = STAGE_ORDER[1:]


class ApplicationStatus(str, Enum):
    PENDING_FIELD_OFFICER = "pending_field_officer"
    PENDING_MANAGER = "pending_manager"
    PENDING_DIRECTOR = "pending_director"
    PENDING_CHAIRPERSON = "pending_chairperson"
    PENDING_CEO = "pending_ceo"
    APPROVED = "approved"
    REJECTED = "rejected"
    REJECTED_FINAL = "rejected_final"


TERMINAL_STATUSES = frozenset(
    {
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.REJECTED_FINAL,
    }
)

_PENDING_STATUS: dict[Stage, ApplicationStatus] = {
    Stage.FIELD_OFFICER: ApplicationStatus.PENDING_FIELD_OFFICER,
    Stage.MANAGER: ApplicationStatus.PENDING_MANAGER,
    Stage.DIRECTOR: ApplicationStatus.PENDING_DIRECTOR,
    Stage.CHAIRPERSON: ApplicationStatus.PENDING_CHAIRPERSON,
    Stage.CEO: ApplicationStatus.PENDING_CEO,
}


def parse_stage(value: str | Stage | None) -> Stage | None:
    """Return the ``Stage`` for ``value`` or ``None`` when it is not a known stage."""
    if value is None:
        return None
    if isinstance(value, Stage):
        return value
    try:
        return Stage(str(value).strip().lower())
    except ValueError:
        return None


def stage_index(stage: Stage) -> int:
    return STAGE_ORDER.index(stage)


def next_stage(stage: Stage) -> Stage | None:
    index = stage_index(stage)
    if index == len(STAGE_ORDER) - 1:
        return None
    return STAGE_ORDER[index + 1]


def is_final_stage(stage: Stage) -> bool:
    return next_stage(stage) is None


def has_reached(current: Stage, target: Stage) -> bool:
    return stage_index(current) >= stage_index(target)


def pending_status_for(stage: Stage) -> ApplicationStatus:
    return _PENDING_STATUS[stage]


def rejected_status_for(stage: Stage) -> ApplicationStatus:
    if is_final_stage(stage):
        return ApplicationStatus.REJECTED_FINAL
    return ApplicationStatus.REJECTED


def is_terminal_status(value: str | ApplicationStatus | None) -> bool:
    if value is None:
        return False
    try:
        return ApplicationStatus(value) in TERMINAL_STATUSES
    except ValueError:
        return False
