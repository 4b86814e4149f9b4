"""Unit tests for the credit ledger: debits, credits, purchases and transitions."""

import pytest

from doccredit.models import CreditBalance, CreditTransaction, TransactionStatus, TransactionType
from doccredit.platform.config import settings
from doccredit.platform.errors import ConflictError, NotFoundError, ValidationError
from doccredit.services import credit_ledger_service as ledger
from doccredit.shared.principal import BalanceOwner, Principal, billing_owner

SCHOOL = BalanceOwner.school("school-1")


def _balance(db, owner=SCHOOL) -> CreditBalance:
    db.expire_all()
    return ledger.get_balance(db, owner)


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------

def test_get_balance_creates_empty_balance_once(db):
    first = ledger.get_balance(db, SCHOOL)
    second = ledger.get_balance(db, SCHOOL)

    assert first.id == second.id
    assert (second.current_credits, second.bonus_credits, second.used_credits) == (0, 0, 0)
    assert db.query(CreditBalance).count() == 1


def test_starting_credits_are_recorded_as_bonus(db, monkeypatch):
    monkeypatch.setattr(settings, "NEW_BALANCE_STARTING_CREDITS", 5)
    balance = ledger.get_balance(db, BalanceOwner.school("fresh"))

    assert balance.current_credits == 5
    assert balance.bonus_credits == 5
    txns = db.query(CreditTransaction).filter(CreditTransaction.owner_id == "fresh").all()
    assert [(t.type, t.credits, t.status) for t in txns] == [
        (TransactionType.BONUS, 5, TransactionStatus.COMPLETED)
    ]


def test_billing_owner_follows_configured_scope():
    principal = Principal(school_id="school-1", user_id=9)
    assert billing_owner(principal, "school") == BalanceOwner.school("school-1")
    assert billing_owner(principal, "user") == BalanceOwner.user(9)
    assert billing_owner(Principal(school_id="school-1"), "user") == BalanceOwner.school("school-1")


# ---------------------------------------------------------------------------
# Debits
# ---------------------------------------------------------------------------

def test_debit_success_records_usage_transaction(db, fund, make_document_type):
    doc = make_document_type()
    fund(SCHOOL, 10)

    result = ledger.reserve_and_debit(db, SCHOOL, 3, reason="generation", document_type_id=doc.id)

    assert result.ok is True
    assert result.balance_after == 7
    assert result.available == 10
    balance = _balance(db)
    assert (balance.current_credits, balance.used_credits) == (7, 3)
    usage = db.query(CreditTransaction).filter(CreditTransaction.id == result.transaction_id).one()
    assert usage.type == TransactionType.USAGE
    assert usage.status == TransactionStatus.COMPLETED
    assert usage.credits == 3
    assert usage.document_type_id == doc.id


def test_insufficient_debit_writes_nothing(db, fund):
    fund(SCHOOL, 2)
    before = db.query(CreditTransaction).count()

    result = ledger.reserve_and_debit(db, SCHOOL, 3, reason="generation")

    assert result.ok is False
    assert result.transaction_id is None
    assert (result.required, result.available) == (3, 2)
    assert _balance(db).current_credits == 2
    assert db.query(CreditTransaction).count() == before


def test_debit_exact_balance_reaches_zero(db, fund):
    fund(SCHOOL, 3)
    assert ledger.reserve_and_debit(db, SCHOOL, 3, reason="generation").ok is True
    assert _balance(db).current_credits == 0
    assert ledger.reserve_and_debit(db, SCHOOL, 1, reason="generation").ok is False


def test_negative_debit_is_rejected(db):
    with pytest.raises(ValidationError):
        ledger.reserve_and_debit(db, SCHOOL, -1, reason="generation")


# ---------------------------------------------------------------------------
# Credits and refunds
# ---------------------------------------------------------------------------

def test_credit_with_reference_is_idempotent(db):
    first = ledger.credit(db, SCHOOL, 10, reason="bonus", reference="promo:1")
    second = ledger.credit(db, SCHOOL, 10, reason="bonus", reference="promo:1")

    assert first.id == second.id
    balance = _balance(db)
    assert balance.current_credits == 10
    assert balance.bonus_credits == 10


def test_credit_reference_used_by_another_owner_conflicts(db):
    other = BalanceOwner.school("school-2")
    ledger.credit(db, SCHOOL, 10, reason="bonus", reference="promo:2")

    with pytest.raises(ConflictError):
        ledger.credit(db, other, 10, reason="bonus", reference="promo:2")

    assert _balance(db).current_credits == 10
    assert _balance(db, other).current_credits == 0
    assert db.query(CreditTransaction).filter_by(reference="promo:2").count() == 1


def test_credit_rejects_non_positive_and_usage_kind(db):
    with pytest.raises(ValidationError):
        ledger.credit(db, SCHOOL, 0, reason="nothing")
    with pytest.raises(ValidationError):
        ledger.credit(db, SCHOOL, 5, kind=TransactionType.USAGE, reason="wrong kind")


def test_refund_usage_restores_credits_once(db, fund):
    fund(SCHOOL, 10)
    debit = ledger.reserve_and_debit(db, SCHOOL, 4, reason="generation")

    refund = ledger.refund_usage(db, debit.transaction_id, reason="failed render")
    again = ledger.refund_usage(db, debit.transaction_id, reason="failed render")

    assert refund.id == again.id
    assert refund.type == TransactionType.REFUND
    assert refund.related_transaction_id == debit.transaction_id
    balance = _balance(db)
    assert (balance.current_credits, balance.used_credits) == (10, 0)


def test_refund_of_non_usage_transaction_is_not_found(db):
    bonus = ledger.credit(db, SCHOOL, 5, reason="bonus")
    with pytest.raises(NotFoundError):
        ledger.refund_usage(db, bonus.id, reason="nope")


# ---------------------------------------------------------------------------
# Purchases and the transaction state machine
# ---------------------------------------------------------------------------

def test_paid_purchase_stays_pending_until_completed(db, make_package):
    package = make_package(credits=100, price="250")

    txn = ledger.create_purchase(db, SCHOOL, package, payment_method="cash")

    assert txn.status == TransactionStatus.PENDING
    assert float(txn.amount) == 250.0
    assert _balance(db).current_credits == 0

    transition = ledger.mark_transaction(db, txn.id, "completed")
    assert transition.changed is True
    assert transition.transaction.status == TransactionStatus.COMPLETED
    assert transition.transaction.completed_at is not None
    assert _balance(db).current_credits == 100


def test_completing_twice_credits_once(db, make_package):
    package = make_package(credits=100)
    txn = ledger.create_purchase(db, SCHOOL, package)

    ledger.mark_transaction(db, txn.id, TransactionStatus.COMPLETED)
    repeat = ledger.mark_transaction(db, txn.id, TransactionStatus.COMPLETED)

    assert repeat.changed is False
    assert _balance(db).current_credits == 100


@pytest.mark.parametrize("first,second", [
    ("completed", "cancelled"),
    ("cancelled", "completed"),
    ("failed", "completed"),
])
def test_terminal_transactions_never_move_again(db, make_package, first, second):
    package = make_package(credits=50)
    txn = ledger.create_purchase(db, SCHOOL, package)
    ledger.mark_transaction(db, txn.id, first)

    with pytest.raises(ConflictError):
        ledger.mark_transaction(db, txn.id, second)

    db.expire_all()
    assert db.query(CreditTransaction).filter(CreditTransaction.id == txn.id).one().status.value == first
    expected = 50 if first == "completed" else 0
    assert _balance(db).current_credits == expected


def test_mark_transaction_rejects_pending_and_unknown(db, make_package):
    txn = ledger.create_purchase(db, SCHOOL, make_package())
    with pytest.raises(ValidationError):
        ledger.mark_transaction(db, txn.id, "pending")
    with pytest.raises(ValidationError):
        ledger.mark_transaction(db, txn.id, "approved")
    with pytest.raises(NotFoundError):
        ledger.mark_transaction(db, 424242, "completed")


def test_usage_transactions_are_created_terminal(db, fund):
    fund(SCHOOL, 5)
    debit = ledger.reserve_and_debit(db, SCHOOL, 1, reason="generation")

    assert ledger.mark_transaction(db, debit.transaction_id, "completed").changed is False
    with pytest.raises(ConflictError):
        ledger.mark_transaction(db, debit.transaction_id, "cancelled")


def test_free_package_completes_once_per_month(db, make_package):
    free = make_package(name="Free Monthly", credits=10, price="0")

    txn = ledger.create_purchase(db, SCHOOL, free)
    assert txn.status == TransactionStatus.COMPLETED
    assert _balance(db).current_credits == 10

    with pytest.raises(ConflictError):
        ledger.create_purchase(db, SCHOOL, free)
    assert _balance(db).current_credits == 10

    # Another school has its own monthly allowance.
    other = BalanceOwner.school("school-2")
    assert ledger.create_purchase(db, other, free).status == TransactionStatus.COMPLETED


def test_inactive_package_cannot_be_purchased(db, make_package):
    package = make_package(is_active=False)
    with pytest.raises(NotFoundError):
        ledger.create_purchase(db, SCHOOL, package)


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------

def test_transactions_listing_and_pending_queue(db, fund, make_package):
    fund(SCHOOL, 10)
    ledger.reserve_and_debit(db, SCHOOL, 2, reason="generation")
    pending = ledger.create_purchase(db, SCHOOL, make_package())
    ledger.create_purchase(db, BalanceOwner.school("school-2"), make_package(name="Other"))

    items, total = ledger.list_transactions(db, SCHOOL)
    assert total == 3
    usage_items, usage_total = ledger.list_transactions(db, SCHOOL, transaction_type=TransactionType.USAGE)
    assert usage_total == 1 and usage_items[0].credits == 2

    queue = ledger.list_pending_purchases(db)
    assert [t.id for t in queue][0] == pending.id
    assert len(queue) == 2


def test_credit_summary(db, make_package):
    txn = ledger.create_purchase(db, SCHOOL, make_package(credits=100))
    ledger.mark_transaction(db, txn.id, "completed")
    ledger.reserve_and_debit(db, SCHOOL, 25, reason="generation")

    summary = ledger.credit_summary(db, SCHOOL)

    assert summary == {
        "current_credits": 75,
        "total_purchased": 100,
        "total_used": 25,
        "this_month_usage": 25,
        "efficiency": 25,
    }


def test_packages_listing_hides_inactive(db, make_package):
    make_package(name="Cheap", price="100")
    make_package(name="Retired", price="50", is_active=False)

    assert [p.name for p in ledger.list_packages(db)] == ["Cheap"]
    assert len(ledger.list_packages(db, include_inactive=True)) == 2
    with pytest.raises(NotFoundError):
        ledger.get_package(db, 999)
