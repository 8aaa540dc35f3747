from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStageError,
    NotFoundError,
    StageOutOfOrderError,
    WorkflowPersistenceError,
    WorkflowValidationError,
)
from app.core.stages import STAGE_ORDER, ApplicationStatus, Stage
from app.models.loan_workflow_stage import LoanWorkflowStage
from app.schemas.workflow import WorkflowAction, WorkflowTransitionRequest
from app.services import loan_workflow

from conftest import (
    FakeAsyncSession,
    application_at,
    log_entries_in,
    make_application,
    make_profile,
    make_workflow,
    notifications_in,
    workflow_session,
)


def _request(action, application, approver, **kwargs) -> WorkflowTransitionRequest:
    return WorkflowTransitionRequest(
        action=action,
        loan_id=application.id,
        approver_id=approver.id,
        **kwargs,
    )


async def _decide(db, action, application, approver, **kwargs):
    return await loan_workflow.apply_transition(
        db,
        _request(action, application, approver, **kwargs),
        actor_id=approver.id,
    )


@pytest.mark.asyncio
async def test_field_officer_approval_advances_to_manager():
    creator = make_profile(role="field_officer")
    officer = make_profile(role="field_officer", full_name="Olive Officer")
    application = make_application(created_by=creator.id)
    workflow = make_workflow(application)
    db = workflow_session(application, workflow, officer)

    result = await _decide(db, WorkflowAction.APPROVE, application, officer, notes="Docs verified")

    assert result.success is True
    assert result.status == "pending_manager"
    assert result.next_stage == "manager"
    assert result.is_final is False
    assert workflow.current_stage == "manager"
    assert workflow.field_officer_approved is True
    assert workflow.field_officer_notes == "Docs verified"
    assert workflow.field_officer_name == "Olive Officer"
    assert workflow.field_officer_decided_by == officer.id
    assert application.status == "pending_manager"

    notes = notifications_in(db)
    assert len(notes) == 1
    assert notes[0].user_id == creator.id
    assert notes[0].entity_id == str(application.id)
    assert "approved by Olive Officer (Field Officer)" in notes[0].message
    assert "moved to Manager stage" in notes[0].message

    entries = log_entries_in(db)
    assert len(entries) == 1
    assert entries[0].action == "approve by field_officer"
    assert entries[0].status == "pending_manager"
    assert entries[0].old_value == {"current_stage": "field_officer", "field_officer_approved": None}
    assert entries[0].new_value == {"current_stage": "manager", "field_officer_approved": True}
    # decision commit + workflow log commit
    assert db.commits == 2


@pytest.mark.asyncio
async def test_manager_rejection_freezes_stage():
    creator = make_profile()
    manager = make_profile(role="manager", full_name="Mary Manager")
    application = application_at(Stage.MANAGER, created_by=creator.id)
    workflow = make_workflow(application, current_stage=Stage.MANAGER)
    db = workflow_session(application, workflow, manager)

    result = await _decide(db, WorkflowAction.REJECT, application, manager, notes="Insufficient collateral")

    assert result.status == "rejected"
    assert result.next_stage is None
    assert result.is_final is True
    assert result.message == "Application rejected"
    assert workflow.manager_approved is False
    assert workflow.current_stage == "manager"
    assert workflow.director_approved is None
    assert application.status == "rejected"
    assert application.rejection_reason == "Insufficient collateral"

    notes = notifications_in(db)
    assert len(notes) == 1
    assert notes[0].message == "Your loan application has been rejected by Mary Manager (Manager)."


@pytest.mark.asyncio
async def test_full_chain_approval_ends_approved():
    creator = make_profile()
    disbursement_officer = make_profile(role="field_officer")
    approvers = {stage: make_profile(role=stage.value, full_name=f"{stage.label} Person") for stage in STAGE_ORDER}
    application = make_application(created_by=creator.id, current_approver=disbursement_officer.id)
    workflow = make_workflow(application)
    db = workflow_session(application, workflow, *approvers.values())

    results = []
    for stage in STAGE_ORDER:
        results.append(await _decide(db, WorkflowAction.APPROVE, application, approvers[stage], notes="ok"))

    final = results[-1]
    assert final.status == "approved"
    assert final.next_stage is None
    assert final.is_final is True
    assert [r.status for r in results[:-1]] == [
        "pending_manager",
        "pending_director",
        "pending_chairperson",
        "pending_ceo",
    ]
    assert application.status == ApplicationStatus.APPROVED.value
    assert application.approval_notes == "ok"
    assert workflow.current_stage == "ceo"
    assert all(workflow.decision_for(stage).approved is True for stage in STAGE_ORDER)

    notes = notifications_in(db)
    creator_notes = [n for n in notes if n.user_id == creator.id]
    assert len(creator_notes) == 5
    assert creator_notes[-1].message == "Your loan application has been APPROVED by CEO Person (CEO). Congratulations!"
    disbursement_notes = [n for n in notes if n.user_id == disbursement_officer.id]
    assert len(disbursement_notes) == 1
    assert "ready for disbursement" in disbursement_notes[0].message


@pytest.mark.asyncio
async def test_ceo_rejection_is_rejected_final():
    creator = make_profile()
    ceo = make_profile(role="ceo", full_name="Chief Exec")
    application = application_at(Stage.CEO, created_by=creator.id)
    workflow = make_workflow(application, current_stage=Stage.CEO)
    db = workflow_session(application, workflow, ceo)

    result = await _decide(db, WorkflowAction.REJECT, application, ceo)

    assert result.status == "rejected_final"
    assert result.is_final is True
    assert workflow.ceo_approved is False
    assert application.status == "rejected_final"
    assert notifications_in(db)[0].message.endswith("This is the final decision.")


@pytest.mark.asyncio
async def test_second_decision_on_same_stage_conflicts():
    manager = make_profile(role="manager")
    application = application_at(Stage.DIRECTOR)
    # The competing request already approved the manager stage and advanced the workflow.
    workflow = make_workflow(application, current_stage=Stage.DIRECTOR)
    db = workflow_session(application, workflow, manager)

    with pytest.raises(ConflictError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, manager)

    assert excinfo.value.code == "stage_already_decided"
    assert excinfo.value.details["field"] == "manager_approved"
    assert workflow.current_stage == "director"
    assert db.added == []
    assert db.commits == 0


@pytest.mark.asyncio
async def test_downsize_changes_amount_only():
    creator = make_profile()
    director = make_profile(role="director", full_name="Dan Director")
    application = application_at(
        Stage.DIRECTOR,
        created_by=creator.id,
        loan_amount=Decimal("8000000.00"),
    )
    workflow = make_workflow(application, current_stage=Stage.DIRECTOR)
    before = {stage: workflow.decision_for(stage) for stage in STAGE_ORDER}
    db = workflow_session(application, workflow, director)

    result = await _decide(db, WorkflowAction.DOWNSIZE, application, director, downsized_amount="5000000")

    assert result.loan_amount == Decimal("5000000")
    assert result.status == "pending_director"
    assert application.loan_amount == Decimal("5000000")
    assert application.downsizing_reason == "Loan amount adjusted from 8,000,000.00 to 5,000,000.00 UGX"
    assert application.status == "pending_director"
    assert workflow.current_stage == "director"
    assert {stage: workflow.decision_for(stage) for stage in STAGE_ORDER} == before
    assert db.added_of(LoanWorkflowStage) == []

    notes = notifications_in(db)
    assert len(notes) == 1
    assert notes[0].user_id == creator.id
    assert "adjusted from 8,000,000.00 to 5,000,000.00 UGX" in notes[0].message
    assert log_entries_in(db)[0].action == "downsize by director"


@pytest.mark.asyncio
async def test_downsize_uses_notes_as_reason():
    ceo = make_profile(role="ceo")
    application = application_at(Stage.CEO)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.CEO), ceo)

    await _decide(
        db,
        WorkflowAction.DOWNSIZE,
        application,
        ceo,
        downsized_amount=Decimal("1000000"),
        notes="Reduced to match repayment capacity",
    )

    assert application.downsizing_reason == "Reduced to match repayment capacity"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [None, "0", "-5"])
async def test_downsize_requires_positive_amount(amount):
    director = make_profile(role="director")
    application = application_at(Stage.DIRECTOR)
    db = FakeAsyncSession()

    with pytest.raises(WorkflowValidationError) as excinfo:
        await _decide(db, WorkflowAction.DOWNSIZE, application, director, downsized_amount=amount)

    assert excinfo.value.status_code == 400
    assert db.executed == []



@pytest.mark.parametrize("amount", ["12.345", "100000000000000000000"])
def test_downsize_amount_must_fit_loan_amount_column(amount):
    director = make_profile(role="director")

    with pytest.raises(ValidationError):
        _request(WorkflowAction.DOWNSIZE, application_at(Stage.DIRECTOR), director, downsized_amount=amount)


def test_downsize_amount_accepts_grouped_digits():
    director = make_profile(role="director")

    request = _request(
        WorkflowAction.DOWNSIZE, application_at(Stage.DIRECTOR), director, downsized_amount="5,000,000.50"
    )

    assert request.downsized_amount == Decimal("5000000.50")


@pytest.mark.asyncio
async def test_field_officer_cannot_downsize():
    officer = make_profile(role="field_officer")
    application = make_application()
    db = workflow_session(application, make_workflow(application), officer)

    with pytest.raises(ForbiddenError) as excinfo:
        await _decide(db, WorkflowAction.DOWNSIZE, application, officer, downsized_amount="100")

    assert excinfo.value.code == "downsize_not_allowed"
    assert application.loan_amount == Decimal("10000000.00")


@pytest.mark.asyncio
async def test_downsize_on_finalized_application_conflicts():
    ceo = make_profile(role="ceo")
    application = make_application(status="approved")
    db = workflow_session(application, make_workflow(application, current_stage=Stage.CEO), ceo)

    with pytest.raises(ConflictError) as excinfo:
        await _decide(db, WorkflowAction.DOWNSIZE, application, ceo, downsized_amount="100")

    assert excinfo.value.code == "application_finalized"


@pytest.mark.asyncio
async def test_approver_must_be_authenticated_user():
    manager = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.MANAGER), manager)

    with pytest.raises(ForbiddenError) as excinfo:
        await loan_workflow.apply_transition(
            db,
            _request(WorkflowAction.APPROVE, application, manager),
            actor_id=uuid4(),
        )

    assert excinfo.value.code == "approver_mismatch"


@pytest.mark.asyncio
async def test_missing_application_is_not_found():
    manager = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    db = workflow_session(None, None, manager)

    with pytest.raises(NotFoundError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, manager)

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("role", [None, "admin", "cashier"])
async def test_approver_without_workflow_role_is_forbidden(role):
    approver = make_profile(role=role)
    application = make_application()
    db = workflow_session(application, make_workflow(application), approver)

    with pytest.raises(ForbiddenError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, approver)

    assert excinfo.value.code == "approver_not_in_workflow"


@pytest.mark.asyncio
async def test_unknown_approver_profile_is_forbidden():
    approver = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.MANAGER))

    with pytest.raises(ForbiddenError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, approver)

    assert excinfo.value.code == "approver_unknown"


@pytest.mark.asyncio
async def test_role_must_match_requested_stage():
    director = make_profile(role="director")
    application = application_at(Stage.MANAGER)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.MANAGER), director)

    with pytest.raises(ForbiddenError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, director, stage="manager")

    assert excinfo.value.code == "role_stage_mismatch"


@pytest.mark.asyncio
async def test_out_of_order_stage_is_rejected():
    director = make_profile(role="director")
    application = application_at(Stage.MANAGER)
    workflow = make_workflow(application, current_stage=Stage.MANAGER)
    db = workflow_session(application, workflow, director)

    with pytest.raises(StageOutOfOrderError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, director)

    assert excinfo.value.status_code == 409
    assert excinfo.value.code == "stage_not_current"
    assert excinfo.value.details == {"stage": "director", "current_stage": "manager"}
    assert workflow.director_approved is None
    assert db.commits == 0


@pytest.mark.asyncio
async def test_decision_on_finalized_application_conflicts():
    director = make_profile(role="director")
    application = make_application(status="rejected")
    workflow = make_workflow(application, current_stage=Stage.MANAGER, manager_approved=False)
    db = workflow_session(application, workflow, director)

    with pytest.raises(ConflictError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, director)

    assert excinfo.value.code == "application_finalized"


@pytest.mark.asyncio
async def test_unknown_stored_stage_is_invalid_stage():
    manager = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    workflow = make_workflow(application, current_stage=Stage.MANAGER)
    workflow.current_stage = "treasurer"
    db = workflow_session(application, workflow, manager)

    with pytest.raises(InvalidStageError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, manager)

    assert excinfo.value.status_code == 500
    assert excinfo.value.details["current_stage"] == "treasurer"


@pytest.mark.asyncio
async def test_missing_workflow_is_bootstrapped_before_deciding():
    officer = make_profile(role="field_officer")
    application = make_application()
    db = workflow_session(application, None, officer)

    result = await _decide(db, WorkflowAction.APPROVE, application, officer)

    assert result.next_stage == "manager"
    workflows = db.added_of(LoanWorkflowStage)
    assert len(workflows) == 1
    assert workflows[0].loan_application_id == application.id
    assert workflows[0].current_stage == "manager"
    assert db.savepoints == 1


@pytest.mark.asyncio
async def test_lost_compare_and_set_is_conflict():
    manager = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.MANAGER), manager)
    db.fail_next_flush(StaleDataError("UPDATE statement on table expected to update 1 row(s); 0 were matched."))

    with pytest.raises(ConflictError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, manager)

    assert excinfo.value.code == "concurrent_update"
    assert db.rollbacks == 1
    assert db.commits == 0
    assert log_entries_in(db) == []


@pytest.mark.asyncio
async def test_database_failure_is_persistence_error():
    manager = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.MANAGER), manager)
    db.fail_next_commit(OperationalError("COMMIT", {}, Exception("connection reset")))

    with pytest.raises(WorkflowPersistenceError) as excinfo:
        await _decide(db, WorkflowAction.APPROVE, application, manager)

    assert excinfo.value.status_code == 500
    assert db.rollbacks == 1
    assert log_entries_in(db) == []


@pytest.mark.asyncio
async def test_workflow_log_failure_does_not_fail_request():
    manager = make_profile(role="manager")
    application = application_at(Stage.MANAGER)
    db = workflow_session(application, make_workflow(application, current_stage=Stage.MANAGER), manager)

    original_commit = db.commit
    calls = {"count": 0}

    async def commit_then_fail():
        calls["count"] += 1
        if calls["count"] == 2:
            raise IntegrityError("INSERT INTO loan_workflow_log", {}, Exception("fk violation"))
        await original_commit()

    db.commit = commit_then_fail

    result = await _decide(db, WorkflowAction.APPROVE, application, manager)

    assert result.status == "pending_director"
    assert application.status == "pending_director"
    assert db.commits == 1
    assert db.rollbacks == 1
