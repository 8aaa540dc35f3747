from app.models.loan_application import LoanApplication
from app.models.loan_workflow_stage import LoanWorkflowStage
from app.models.notification import Notification
from app.models.profile import Profile
from app.models.weekly_report import WeeklyReport
from app.models.workflow_log import WorkflowLogEntry

__all__ = [
    "LoanApplication",
    "LoanWorkflowStage",
    "Notification",
    "Profile",
    "WeeklyReport",
    "WorkflowLogEntry",
]
