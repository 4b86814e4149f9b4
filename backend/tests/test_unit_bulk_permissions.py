"""Unit tests for bulk grant/revoke: idempotence, atomic vs partial batches."""

import pytest

from doccredit.components.permissions.bulk import (
    BulkMode,
    PermissionTarget,
    grant_permissions,
    list_permissions,
    permission_summary,
    revoke_permissions,
    set_category_permissions,
    set_permission,
)
from doccredit.components.permissions.resolver import resolve_permission
from doccredit.models import DocumentPermission
from doccredit.platform.config import settings
from doccredit.platform.errors import TemplateNotFound, ValidationError
from doccredit.shared.principal import Principal

SCHOOL_TARGET = PermissionTarget.for_school("school-1")
SCHOOL = Principal(school_id="school-1")


def _snapshot(db):
    db.expire_all()
    return sorted(
        (
            row.scope_type.value,
            row.scope_id,
            row.document_type_id,
            row.is_allowed,
            row.credits_per_use,
            row.granted_at,
            row.revoked_at,
        )
        for row in db.query(DocumentPermission).all()
    )


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------

def test_grant_twice_leaves_identical_rows(db, make_document_type):
    docs = [make_document_type() for _ in range(3)]
    ids = [d.id for d in docs]

    grant_permissions(db, SCHOOL_TARGET, ids, credits_per_use=2)
    first = _snapshot(db)
    result = grant_permissions(db, SCHOOL_TARGET, ids, credits_per_use=2)

    assert result.updated == 3
    assert _snapshot(db) == first
    assert db.query(DocumentPermission).count() == 3


def test_revoke_twice_keeps_original_revocation_time(db, make_document_type):
    doc = make_document_type()
    revoke_permissions(db, SCHOOL_TARGET, [doc.id])
    first = _snapshot(db)
    revoke_permissions(db, SCHOOL_TARGET, [doc.id])

    assert _snapshot(db) == first


def test_revoke_then_grant_restores_access_and_keeps_single_row(db, make_document_type):
    doc = make_document_type(credits_required=3)
    grant_permissions(db, SCHOOL_TARGET, [doc.id])
    revoke_permissions(db, SCHOOL_TARGET, [doc.id])

    db.expire_all()
    row = db.query(DocumentPermission).one()
    assert row.is_allowed is False
    assert row.revoked_at is not None
    assert resolve_permission(db, SCHOOL, doc.id).is_enabled is False

    grant_permissions(db, SCHOOL_TARGET, [doc.id])
    db.expire_all()
    row = db.query(DocumentPermission).one()
    assert row.is_allowed is True
    assert row.revoked_at is None
    assert row.granted_at is not None
    assert resolve_permission(db, SCHOOL, doc.id).is_enabled is True


def test_grant_without_price_keeps_existing_override(db, make_document_type):
    doc = make_document_type(credits_required=3)
    grant_permissions(db, SCHOOL_TARGET, [doc.id], credits_per_use=1)
    grant_permissions(db, SCHOOL_TARGET, [doc.id])

    assert resolve_permission(db, SCHOOL, doc.id).credits_required == 1


def test_single_set_permission_writes_price_as_given(db, make_document_type):
    doc = make_document_type(credits_required=3)
    set_permission(db, SCHOOL_TARGET, doc.id, is_allowed=True, credits_per_use=1)
    row = set_permission(db, SCHOOL_TARGET, doc.id, is_allowed=True, credits_per_use=None)

    assert row.credits_per_use is None
    assert resolve_permission(db, SCHOOL, doc.id).credits_required == 3


def test_set_permission_unknown_type_raises(db):
    with pytest.raises(TemplateNotFound):
        set_permission(db, SCHOOL_TARGET, 12345, is_allowed=True)


# ---------------------------------------------------------------------------
# Batch failure modes
# ---------------------------------------------------------------------------

def test_atomic_batch_with_unknown_id_writes_nothing(db, make_document_type):
    doc = make_document_type()

    with pytest.raises(ValidationError) as excinfo:
        grant_permissions(db, SCHOOL_TARGET, [doc.id, 9999], mode=BulkMode.ATOMIC)

    assert excinfo.value.details["invalidIds"] == [9999]
    assert db.query(DocumentPermission).count() == 0


def test_partial_batch_reports_each_item(db, make_document_type):
    doc_a = make_document_type()
    doc_b = make_document_type()

    result = revoke_permissions(db, SCHOOL_TARGET, [doc_a.id, 9999, doc_b.id], mode=BulkMode.PARTIAL)

    assert result.updated == 2
    assert [(i.document_type_id, i.ok, i.error) for i in result.items] == [
        (doc_a.id, True, None),
        (9999, False, "TEMPLATE_NOT_FOUND"),
        (doc_b.id, True, None),
    ]
    assert len(result.failed) == 1
    assert db.query(DocumentPermission).count() == 2


def test_duplicate_ids_in_batch_are_written_once(db, make_document_type):
    doc = make_document_type()
    result = grant_permissions(db, SCHOOL_TARGET, [doc.id, doc.id, doc.id])

    assert result.updated == 1
    assert db.query(DocumentPermission).count() == 1


def test_empty_and_oversized_batches_are_rejected(db, make_document_type, monkeypatch):
    doc = make_document_type()
    with pytest.raises(ValidationError):
        grant_permissions(db, SCHOOL_TARGET, [])

    monkeypatch.setattr(settings, "BULK_PERMISSION_MAX_ITEMS", 1)
    other = make_document_type()
    with pytest.raises(ValidationError):
        grant_permissions(db, SCHOOL_TARGET, [doc.id, other.id])


def test_negative_override_is_rejected(db, make_document_type):
    doc = make_document_type()
    with pytest.raises(ValidationError):
        grant_permissions(db, SCHOOL_TARGET, [doc.id], credits_per_use=-1)


# ---------------------------------------------------------------------------
# Category operations
# ---------------------------------------------------------------------------

def test_category_revoke_only_touches_that_category(db, make_document_type):
    exam_a = make_document_type(category="examination")
    exam_b = make_document_type(category="examination")
    identity = make_document_type(category="identity")

    result = set_category_permissions(db, SCHOOL_TARGET, "examination", is_allowed=False)

    assert result.updated == 2
    assert resolve_permission(db, SCHOOL, exam_a.id).is_enabled is False
    assert resolve_permission(db, SCHOOL, exam_b.id).is_enabled is False
    assert resolve_permission(db, SCHOOL, identity.id).is_enabled is True


def test_category_operation_skips_inactive_types(db, make_document_type):
    make_document_type(category="examination", is_active=False)
    result = set_category_permissions(db, SCHOOL_TARGET, "examination", is_allowed=True)

    assert result.updated == 0
    assert db.query(DocumentPermission).count() == 0


# ---------------------------------------------------------------------------
# Targets and listings
# ---------------------------------------------------------------------------

def test_target_parse_rules():
    assert PermissionTarget.parse("default", None) == PermissionTarget.default()
    assert PermissionTarget.parse("school", "s-9") == PermissionTarget.for_school("s-9")
    assert PermissionTarget.parse("user", "12") == PermissionTarget.for_user(12)
    with pytest.raises(ValidationError):
        PermissionTarget.parse("user", "abc")
    with pytest.raises(ValidationError):
        PermissionTarget.parse("school", None)
    with pytest.raises(ValidationError):
        PermissionTarget.parse("tenant", "x")


def test_list_permissions_and_summary(db, make_document_type):
    doc_a = make_document_type()
    doc_b = make_document_type()
    grant_permissions(db, SCHOOL_TARGET, [doc_a.id, doc_b.id])
    revoke_permissions(db, PermissionTarget.for_school("school-2"), [doc_a.id])

    assert len(list_permissions(db, SCHOOL_TARGET)) == 2
    assert len(list_permissions(db, document_type_id=doc_a.id)) == 2

    summary = {row["document_type_id"]: row for row in permission_summary(db)}
    assert summary[doc_a.id]["allowed"] == 1
    assert summary[doc_a.id]["revoked"] == 1
    assert summary[doc_b.id]["allowed"] == 1
    assert summary[doc_b.id]["revoked"] == 0
