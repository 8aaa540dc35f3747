from enum import Enum
from typing import Iterable, List

from app.core.stages import Stage


class StaffRole(str, Enum):
    FIELD_OFFICER = "field_officer"
    MANAGER = "manager"
    DIRECTOR = "director"
    CHAIRPERSON = "chairperson"
    CEO = "ceo"
    ADMIN = "admin"

    @property
    def stage(self) -> Stage | None:
        """The approval stage this role decides, if any."""
        try:
            return Stage(self.value)
        except ValueError:
            return None


class PermissionCode(str, Enum):
    # Loan origination
    LOAN_SUBMIT = "loan.submit"
    LOAN_VIEW = "loan.view"

    # Approval workflow
    LOAN_WORKFLOW_DECIDE = "loan.workflow.decide"
    LOAN_WORKFLOW_DOWNSIZE = "loan.workflow.downsize"
    LOAN_WORKFLOW_LOG_VIEW = "loan.workflow.log.view"

    # Reporting
    REPORT_WEEKLY_VIEW = "report.weekly.view"
    REPORT_WEEKLY_GENERATE = "report.weekly.generate"

    @classmethod
    def list_all(cls) -> List[str]:
        return [code.value for code in cls]

    @classmethod
    def normalize(cls, values: Iterable[str]) -> List[str]:
        """Return unique permission codes that are valid members."""
        seen = set()
        normalized: list[str] = []
        for value in values:
            try:
                code = cls(value)
            except ValueError:
                continue
            if code.value not in seen:
                seen.add(code.value)
                normalized.append(code.value)
        return normalized


_REVIEWER_PERMISSIONS = {
    PermissionCode.LOAN_VIEW,
    PermissionCode.LOAN_WORKFLOW_DECIDE,
    PermissionCode.LOAN_WORKFLOW_DOWNSIZE,
    PermissionCode.LOAN_WORKFLOW_LOG_VIEW,
    PermissionCode.REPORT_WEEKLY_VIEW,
}

ROLE_PERMISSIONS: dict[StaffRole, frozenset[PermissionCode]] = {
    StaffRole.FIELD_OFFICER: frozenset(
        {
            PermissionCode.LOAN_SUBMIT,
            PermissionCode.LOAN_VIEW,
            PermissionCode.LOAN_WORKFLOW_DECIDE,
            PermissionCode.LOAN_WORKFLOW_LOG_VIEW,
        }
    ),
    StaffRole.MANAGER: frozenset(_REVIEWER_PERMISSIONS | {PermissionCode.LOAN_SUBMIT}),
    StaffRole.DIRECTOR: frozenset(_REVIEWER_PERMISSIONS),
    StaffRole.CHAIRPERSON: frozenset(_REVIEWER_PERMISSIONS),
    StaffRole.CEO: frozenset(_REVIEWER_PERMISSIONS | {PermissionCode.REPORT_WEEKLY_GENERATE}),
    StaffRole.ADMIN: frozenset(
        {
            PermissionCode.LOAN_VIEW,
            PermissionCode.LOAN_WORKFLOW_LOG_VIEW,
            PermissionCode.REPORT_WEEKLY_VIEW,
            PermissionCode.REPORT_WEEKLY_GENERATE,
        }
    ),
}


def parse_role(value: str | None) -> StaffRole | None:
    if not value:
        return None
    try:
        return StaffRole(value.strip().lower())
    except ValueError:
        return None


def role_has_permission(role: str | StaffRole | None, permission: PermissionCode | str) -> bool:
    parsed = role if isinstance(role, StaffRole) else parse_role(role)
    if parsed is None:
        return False
    target = permission if isinstance(permission, PermissionCode) else PermissionCode(permission)
    return target in ROLE_PERMISSIONS.get(parsed, frozenset())
