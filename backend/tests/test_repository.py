import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from stagingpro.db.session import MIGRATIONS
from stagingpro.models.message import Message
from stagingpro.models.plan import Plan, plan_from_public, plan_to_public
from stagingpro.services.realtime import ChangeFeed, ChangeType
from stagingpro.services.repository import (
    PlanRepository,
    RecordNotFound,
    ReferentialIntegrityError,
    SchemaMissingError,
    StudioData,
    SubmissionRepository,
    WriteError,
    _translate_write_error,
    new_editor_id,
    new_order_id,
)


def test_submissions_come_back_newest_first(data, make_submission):
    make_submission(id="OLD", timestamp=1000)
    make_submission(id="NEW", timestamp=3000)
    make_submission(id="MID", timestamp=2000)
    assert [s.id for s in data.submissions.fetch_all()] == ["NEW", "MID", "OLD"]


def test_plans_are_ordered_by_number(data, plans):
    assert [p.number for p in data.plans.fetch_all()] == ["01", "02", "03", "04"]


def test_scoped_fetches(data, make_submission):
    make_submission(id="A", owner_id="u1", assigned_editor_id="ed_1")
    make_submission(id="B", owner_id="u2")
    assert [s.id for s in data.submissions.fetch_by_user("u1")] == ["A"]
    assert [s.id for s in data.submissions.fetch_by_editor("ed_1")] == ["A"]


def test_failed_read_is_empty_but_flagged(engine):
    def broken_session():
        raise RuntimeError("connection refused")

    result = SubmissionRepository(session_factory=broken_session).fetch_all()
    assert result == []
    assert result.failed
    assert "connection refused" in str(result.error)


def test_empty_read_is_not_a_failure(data):
    result = data.editors.fetch_all()
    assert result == [] and not result.failed


def test_update_missing_record(data):
    with pytest.raises(RecordNotFound):
        data.submissions.update("NOPE", {"status": "processing"})


def test_update_unknown_column_reports_schema(data, make_submission):
    make_submission(id="S1")
    with pytest.raises(SchemaMissingError):
        data.submissions.update("S1", {"not_a_column": 1})


def test_missing_column_error_names_migration():
    exc = OperationalError("UPDATE submissions ...", {}, Exception("no such column: quoted_amount"))
    err = _translate_write_error("submissions", exc)
    assert isinstance(err, SchemaMissingError)
    assert err.migration == MIGRATIONS["submissions.quoted_amount"]
    assert MIGRATIONS["submissions.quoted_amount"] in str(err)


def test_other_integrity_errors_stay_generic():
    exc = IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed: plans.id"))
    err = _translate_write_error("plans", exc)
    assert type(err) is WriteError


def test_plan_in_use_cannot_be_deleted(data, make_submission):
    make_submission(plan="furniture_remove")
    with pytest.raises(ReferentialIntegrityError):
        data.plans.delete("furniture_remove")
    assert data.plans.get("furniture_remove") is not None


def test_duplicate_plan_id_is_a_write_error(data, plans):
    with pytest.raises(WriteError):
        data.plans.insert(Plan(id="furniture_add", title="Again"))


def test_plan_visibility_mapping():
    plan = Plan(id="p", title="P", is_visible=None)
    assert plan_to_public(plan)["isVisible"] is True
    assert plan_from_public({"id": "p", "isVisible": False, "extra": 1}) == {"id": "p", "is_visible": False}
    assert plan_from_public({"is_visible": True}) == {"is_visible": True}


def test_writes_publish_changes(engine, storage):
    feed = ChangeFeed()
    data = StudioData(feed=feed, storage=storage)
    data.plans.insert(Plan(id="furniture_add", title="Staging", amount=4500, number="02"))
    subscription = feed.subscribe("submissions")

    from stagingpro.models.submission import Submission

    data.submissions.insert(Submission(id="S1", owner_id="u1", plan="furniture_add", data_url="x", timestamp=1))
    data.submissions.update("S1", {"status": "pending", "payment_status": "paid"})
    data.submissions.delete("S1")

    changes = subscription.drain()
    assert [c.type for c in changes] == [ChangeType.INSERT, ChangeType.UPDATE, ChangeType.DELETE]
    assert changes[1].record["paymentStatus"] == "paid"
    assert changes[2].record_id == "S1"


def test_plan_writes_are_not_broadcast(engine, storage):
    feed = ChangeFeed()
    subscription = feed.subscribe("plans")
    PlanRepository(feed=feed).insert(Plan(id="x", title="X"))
    assert subscription.drain() == []


def test_messages_by_conversation(data, make_submission):
    make_submission(id="S1")
    for ts, text in [(30, "third"), (10, "first"), (20, "second")]:
        data.messages.insert(Message(submission_id="S1", sender_id="u", sender_name="u", sender_role="user", content=text, timestamp=ts))
    data.messages.insert(Message(submission_id="S2", sender_id="u", sender_name="u", sender_role="user", content="other", timestamp=5))

    assert [m.content for m in data.messages.fetch_by_submission("S1")] == ["first", "second", "third"]
    assert len(data.messages.fetch_for_submissions(["S1", "S2"])) == 4
    assert data.messages.fetch_for_submissions([]) == []


def test_read_receipts_only_move_forward(data):
    assert data.receipts.mark_read("u1", "S1", 100) == 100
    assert data.receipts.mark_read("u1", "S1", 50) == 100
    assert data.receipts.mark_read("u1", "S1", 200) == 200
    data.receipts.mark_read("u1", "S2", 7)
    assert data.receipts.watermarks("u1") == {"S1": 200, "S2": 7}
    assert data.receipts.watermarks("u2") == {}


def test_generated_ids():
    order_id = new_order_id()
    assert len(order_id) == 12 and order_id.upper() == order_id
    assert new_order_id() != order_id
    assert new_editor_id().startswith("ed_")
