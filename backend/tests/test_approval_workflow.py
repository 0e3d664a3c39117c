"""End-to-end approval workflow tests: submit, then approve / reject.

Runs the real submission and approval services against the in-memory
``workflow_store`` fixture.
"""
import uuid

import pytest

from expenseflow.core.exceptions import AlreadyProcessed, InvalidInput, InvalidState, NotFound
from expenseflow.models.approval import ApprovalStatus
from expenseflow.models.approval_rule import ApprovalType
from expenseflow.models.expense import ExpenseStatus
from expenseflow.rules.completion import CompletionOutcome
from expenseflow.services import approval as approval_svc
from expenseflow.services.approval import act, approve, evaluate, reject
from expenseflow.services.approval_logs import REJECTED_BY_ANOTHER_APPROVER
from expenseflow.services.submission import submit

OWNER = uuid.uuid4()
ALICE = uuid.uuid4()
BOB = uuid.uuid4()
CAROL = uuid.uuid4()


def _submitted(store, db, approvers, approval_type=ApprovalType.SEQUENTIAL):
    company = store.add_company()
    store.add_rule(company, approvers, approval_type=approval_type)
    expense = store.add_expense(company, OWNER)
    submit(db, expense.id, OWNER)
    assert expense.status == ExpenseStatus.SUBMITTED.value
    return expense


def _statuses(store, expense) -> list[str]:
    return [log.status for log in store.logs_for(expense)]


# ─── Sequential ───

class TestSequential:
    def test_in_order_approvals_complete(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB])

        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)
        assert expense.status == ExpenseStatus.SUBMITTED.value

        approve(db, workflow_store.log_for(expense, BOB).id, BOB, "ok")
        assert expense.status == ExpenseStatus.APPROVED.value
        assert expense.approved_at is not None
        assert _statuses(workflow_store, expense) == ["approved", "approved"]

    def test_shared_order_waits_for_every_approver_at_that_step(self, workflow_store, db):
        company = workflow_store.add_company()
        workflow_store.add_rule(company, [ALICE, BOB], orders=[2, 2])
        expense = workflow_store.add_expense(company, OWNER)
        submit(db, expense.id, OWNER)

        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)
        assert expense.status == ExpenseStatus.SUBMITTED.value
        assert workflow_store.log_for(expense, BOB).status == ApprovalStatus.PENDING.value

        approve(db, workflow_store.log_for(expense, BOB).id, BOB)
        assert expense.status == ExpenseStatus.APPROVED.value

    def test_out_of_order_approval_waits_for_earlier_approver(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB])

        approve(db, workflow_store.log_for(expense, BOB).id, BOB)
        assert expense.status == ExpenseStatus.SUBMITTED.value
        assert workflow_store.log_for(expense, ALICE).status == ApprovalStatus.PENDING.value

        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)
        assert expense.status == ExpenseStatus.APPROVED.value

    def test_three_approvers_middle_last_first(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB, CAROL])

        approve(db, workflow_store.log_for(expense, BOB).id, BOB)
        approve(db, workflow_store.log_for(expense, CAROL).id, CAROL)
        assert expense.status == ExpenseStatus.SUBMITTED.value

        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)
        assert expense.status == ExpenseStatus.APPROVED.value


# ─── Parallel ───

class TestParallel:
    def test_requires_every_approver(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB, CAROL], ApprovalType.PARALLEL)

        approve(db, workflow_store.log_for(expense, CAROL).id, CAROL)
        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)
        assert expense.status == ExpenseStatus.SUBMITTED.value

        approve(db, workflow_store.log_for(expense, BOB).id, BOB)
        assert expense.status == ExpenseStatus.APPROVED.value

    def test_approval_transition_happens_once(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB], ApprovalType.PARALLEL)

        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)
        approve(db, workflow_store.log_for(expense, BOB).id, BOB)

        approved_writes = [
            c for c in approval_svc.update_expense_status.call_args_list
            if c.args[2] is ExpenseStatus.APPROVED
        ]
        assert len(approved_writes) == 1
        assert expense.version == 3


# ─── Rejection ───

class TestReject:
    def test_first_rejection_sweeps_pending_logs(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB, CAROL], ApprovalType.PARALLEL)
        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)

        reject(db, workflow_store.log_for(expense, BOB).id, BOB, "  Missing receipt ")

        assert expense.status == ExpenseStatus.REJECTED.value
        assert expense.rejection_reason == "Missing receipt"
        assert expense.rejected_at is not None
        alice, bob, carol = workflow_store.logs_for(expense)
        assert alice.status == ApprovalStatus.APPROVED.value
        assert bob.status == ApprovalStatus.REJECTED.value
        assert bob.comments == "Missing receipt"
        assert carol.status == ApprovalStatus.REJECTED.value
        assert carol.comments == REJECTED_BY_ANOTHER_APPROVER

    def test_sequential_rejection_by_later_approver(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB])

        reject(db, workflow_store.log_for(expense, BOB).id, BOB, "Over budget")

        assert expense.status == ExpenseStatus.REJECTED.value
        assert _statuses(workflow_store, expense) == ["rejected", "rejected"]

    def test_acting_after_rejection_is_already_processed(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB], ApprovalType.PARALLEL)
        reject(db, workflow_store.log_for(expense, ALICE).id, ALICE, "No")

        with pytest.raises(AlreadyProcessed):
            approve(db, workflow_store.log_for(expense, BOB).id, BOB)
        assert expense.status == ExpenseStatus.REJECTED.value
        db.rollback.assert_called_once()

    @pytest.mark.parametrize("comments", [None, "", "   "])
    def test_rejection_requires_reason(self, workflow_store, db, comments):
        expense = _submitted(workflow_store, db, [ALICE])

        with pytest.raises(InvalidInput):
            reject(db, workflow_store.log_for(expense, ALICE).id, ALICE, comments)
        assert expense.status == ExpenseStatus.SUBMITTED.value
        assert workflow_store.log_for(expense, ALICE).status == ApprovalStatus.PENDING.value


# ─── Guards ───

class TestGuards:
    def test_unknown_log_is_not_found(self, workflow_store, db):
        with pytest.raises(NotFound):
            approve(db, uuid.uuid4(), ALICE)

    def test_other_approvers_log_is_not_found(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB])
        with pytest.raises(NotFound):
            approve(db, workflow_store.log_for(expense, ALICE).id, BOB)
        assert workflow_store.log_for(expense, ALICE).status == ApprovalStatus.PENDING.value

    def test_double_approval_is_already_processed(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB])
        log_id = workflow_store.log_for(expense, ALICE).id
        approve(db, log_id, ALICE)

        with pytest.raises(AlreadyProcessed):
            approve(db, log_id, ALICE)

    def test_unknown_decision_is_invalid_input(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE])
        with pytest.raises(InvalidInput):
            act(db, workflow_store.log_for(expense, ALICE).id, ALICE, "escalate")

    def test_expense_no_longer_submitted_is_invalid_state(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB], ApprovalType.PARALLEL)
        expense.status = ExpenseStatus.PAID.value

        with pytest.raises(InvalidState):
            approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)


# ─── Completion evaluation ───

class TestEvaluate:
    def test_missing_rule_is_logged_and_ignored(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE])
        workflow_store.rules.clear()

        approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)

        assert expense.status == ExpenseStatus.SUBMITTED.value
        assert workflow_store.log_for(expense, ALICE).status == ApprovalStatus.APPROVED.value

    def test_evaluate_reports_waiting(self, workflow_store, db):
        expense = _submitted(workflow_store, db, [ALICE, BOB])
        workflow_store.log_for(expense, ALICE).status = ApprovalStatus.APPROVED.value

        decision = evaluate(db, expense.id)

        assert decision.outcome is CompletionOutcome.WAITING
        assert expense.status == ExpenseStatus.SUBMITTED.value

    def test_evaluate_skips_non_submitted_expense(self, workflow_store, db):
        company = workflow_store.add_company()
        expense = workflow_store.add_expense(company, OWNER)
        assert evaluate(db, expense.id) is None

    def test_evaluate_unknown_expense(self, workflow_store, db):
        with pytest.raises(NotFound):
            evaluate(db, uuid.uuid4())


# ─── Status summary ───

def test_approval_status_summary(workflow_store, db):
    expense = _submitted(workflow_store, db, [ALICE, BOB, CAROL], ApprovalType.PARALLEL)
    approve(db, workflow_store.log_for(expense, ALICE).id, ALICE)

    summary = approval_svc.get_approval_status(db, expense.id)

    assert summary == {
        "total_approvers": 3,
        "completed_approvals": 1,
        "approved": 1,
        "rejected": 0,
        "pending_approvals": 2,
        "is_completed": False,
    }
