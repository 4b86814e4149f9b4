"""Unit tests for usage metering and the statistics views."""

import pytest

from doccredit.components.usage import service as usage
from doccredit.models import DocumentStats, DocumentType, UsageLog
from doccredit.platform.errors import TemplateNotFound
from doccredit.shared.principal import Principal

PRINCIPAL = Principal(school_id="school-1", user_id=7)


def _reload(db, model, **filters):
    db.expire_all()
    return db.query(model).filter_by(**filters).one()


# ---------------------------------------------------------------------------
# record_usage
# ---------------------------------------------------------------------------

def test_record_usage_updates_counter_log_and_stats(db, make_document_type):
    doc = make_document_type(credits_required=3)

    log = usage.record_usage(db, PRINCIPAL, doc.id, 3, document_data={"student": "Rahim"})

    assert log.id is not None
    assert log.school_id == "school-1"
    assert log.user_id == 7
    assert log.credits_charged == 3
    assert log.document_data == {"student": "Rahim"}

    refreshed = _reload(db, DocumentType, id=doc.id)
    assert refreshed.usage_count == 1
    assert refreshed.last_used is not None

    stats = _reload(db, DocumentStats, document_type_id=doc.id, school_id="school-1")
    assert stats.total_generated == 1
    assert stats.last_generated is not None


def test_repeated_usage_accumulates_in_one_stats_row(db, make_document_type):
    doc = make_document_type()
    for _ in range(3):
        usage.record_usage(db, PRINCIPAL, doc.id, 2)
    usage.record_usage(db, Principal(school_id="school-2"), doc.id, 2)

    db.expire_all()
    assert db.query(DocumentType).filter_by(id=doc.id).one().usage_count == 4
    rows = {
        row.school_id: row.total_generated
        for row in db.query(DocumentStats).filter_by(document_type_id=doc.id).all()
    }
    assert rows == {"school-1": 3, "school-2": 1}
    assert db.query(UsageLog).count() == 4


def test_record_usage_unknown_type_writes_nothing(db):
    with pytest.raises(TemplateNotFound):
        usage.record_usage(db, PRINCIPAL, 999, 1)

    assert db.query(UsageLog).count() == 0
    assert db.query(DocumentStats).count() == 0


def test_zero_cost_usage_is_still_logged(db, make_document_type):
    doc = make_document_type(credits_required=0)
    log = usage.record_usage(db, PRINCIPAL, doc.id, 0)
    assert log.credits_charged == 0
    assert _reload(db, DocumentType, id=doc.id).usage_count == 1


# ---------------------------------------------------------------------------
# track_usage
# ---------------------------------------------------------------------------

def test_track_usage_bumps_counter_only(db, make_document_type):
    doc = make_document_type()

    updated = usage.track_usage(db, doc.id)

    assert updated.usage_count == 1
    assert db.query(UsageLog).count() == 0
    assert db.query(DocumentStats).count() == 0


def test_track_usage_rejects_inactive_and_missing(db, make_document_type):
    inactive = make_document_type(is_active=False)
    with pytest.raises(TemplateNotFound):
        usage.track_usage(db, inactive.id)
    with pytest.raises(TemplateNotFound):
        usage.track_usage(db, 12345)
    assert _reload(db, DocumentType, id=inactive.id).usage_count == 0


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

def test_rebuild_matches_incremental_stats(db, make_document_type):
    first = make_document_type()
    second = make_document_type(category="academic")
    usage.record_usage(db, PRINCIPAL, first.id, 2)
    usage.record_usage(db, PRINCIPAL, first.id, 2)
    usage.record_usage(db, Principal(school_id="school-2"), second.id, 2)

    db.expire_all()
    before = sorted(
        (row.document_type_id, row.school_id, row.total_generated) for row in db.query(DocumentStats).all()
    )
    db.query(DocumentStats).delete()
    db.commit()

    rebuilt = usage.rebuild_document_stats(db)

    db.expire_all()
    after = sorted(
        (row.document_type_id, row.school_id, row.total_generated) for row in db.query(DocumentStats).all()
    )
    assert rebuilt == 2
    assert after == before


def test_school_stats_are_ordered_by_volume(db, make_document_type):
    quiet = make_document_type(name="Quiet")
    busy = make_document_type(name="Busy")
    usage.record_usage(db, PRINCIPAL, quiet.id, 1)
    for _ in range(2):
        usage.record_usage(db, PRINCIPAL, busy.id, 1)

    rows = usage.document_stats_for_school(db, "school-1")

    assert [(row["name"], row["total_generated"]) for row in rows] == [("Busy", 2), ("Quiet", 1)]
    assert usage.document_stats_for_school(db, "school-9") == []


def test_category_and_overall_rollups(db, make_document_type):
    id_card = make_document_type(category="identity")
    make_document_type(category="identity", is_active=False)
    report = make_document_type(category="academic")
    usage.record_usage(db, PRINCIPAL, id_card.id, 2)
    usage.record_usage(db, Principal(school_id="school-2"), report.id, 5)

    categories = {row["category"]: row for row in usage.stats_by_category(db)}
    assert categories["identity"]["document_types"] == 2
    assert categories["identity"]["active_document_types"] == 1
    assert categories["identity"]["total_generated"] == 1
    assert categories["academic"]["total_generated"] == 1

    scoped = {row["category"]: row for row in usage.stats_by_category(db, school_id="school-2")}
    assert scoped["identity"]["total_generated"] == 0
    assert scoped["academic"]["total_generated"] == 1

    overall = usage.stats_overall(db)
    assert overall["total_generated"] == 2
    assert overall["credits_charged"] == 7
    assert overall["schools"] == 2
    assert overall["document_types"] == 3

    schools = usage.stats_by_school(db)
    assert {row["school_id"]: row["credits_charged"] for row in schools} == {"school-1": 2, "school-2": 5}


def test_window_stats_count_recent_generations(db, make_document_type):
    doc = make_document_type()
    usage.record_usage(db, PRINCIPAL, doc.id, 2)
    usage.record_usage(db, PRINCIPAL, doc.id, 2)

    rows = usage.stats_by_window(db, days=7)

    assert sum(row["total_generated"] for row in rows) == 2
    assert sum(row["credits_charged"] for row in rows) == 4
    assert usage.stats_by_window(db, days=7, school_id="elsewhere") == []


def test_generated_documents_history_pages(db, make_document_type):
    doc = make_document_type()
    for _ in range(3):
        usage.record_usage(db, PRINCIPAL, doc.id, 1)
    usage.record_usage(db, Principal(school_id="school-1", user_id=8), doc.id, 1)

    items, total = usage.list_generated_documents(db, "school-1", page=1, limit=2)
    assert total == 4
    assert len(items) == 2

    mine, mine_total = usage.list_generated_documents(db, "school-1", user_id=8)
    assert mine_total == 1
    assert mine[0].user_id == 8
