from datetime import timedelta

import pytest
from sqlalchemy import text

from civictally.extensions import db, tally_completed
from civictally.models import AuditLogEntry, Ballot, BallotSlot, TallyResult, VoteEvent
from civictally.services import audit, lifecycle
from civictally.services.ballots import submit_ballot, verify_receipt
from civictally.services.errors import (
    EventConfigurationError,
    LifecycleError,
    ResultNotAvailable,
    TallyError,
)
from civictally.services.voting import EventSpec
from civictally.timeutil import utcnow


def _event_data(method="approval", **overrides):
    now = utcnow()
    data = {
        "title": "Neighbourhood priorities",
        "method": method,
        "start_at": now - timedelta(hours=1),
        "end_at": now + timedelta(hours=1),
        "options": ["A", "B"],
    }
    data.update(overrides)
    return data


def _event_types(event):
    return [
        entry.event_type
        for entry in AuditLogEntry.query.filter_by(event_id=event.id).order_by(AuditLogEntry.id)
    ]


def test_create_fills_method_defaults(app):
    quadratic = lifecycle.create_vote_event(_event_data("quadratic"))
    majority = lifecycle.create_vote_event(_event_data("simple_majority"))

    assert quadratic.status == "draft"
    assert quadratic.total_budget == app.config["QUADRATIC_DEFAULT_CREDITS"]
    assert majority.max_options == 1
    assert majority.majority_threshold_pct == 50.0
    assert [option.key for option in majority.options] == ["A", "B"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"method": "borda"},
        {"title": ""},
        {"options": ["A", "A"]},
        {"parameters": {"min_options": 3, "max_options": 2}},
        {"eligibility": {"verification_level": 5}},
        {"method": "knapsack", "parameters": {"total_budget": 100}},
        {"method": "knapsack", "options": [{"key": "park", "cost": 10}]},
        {"method": "simple_majority", "parameters": {"max_options": 2}},
        {"parameters": {"majority_threshold_pct": 120}},
    ],
)
def test_create_rejects_bad_configuration(app, overrides):
    with pytest.raises(EventConfigurationError):
        lifecycle.create_vote_event(_event_data(**overrides))

    assert VoteEvent.query.count() == 0


def test_end_before_start_is_rejected(app):
    now = utcnow()

    with pytest.raises(EventConfigurationError):
        lifecycle.create_vote_event(_event_data(start_at=now, end_at=now - timedelta(minutes=1)))


def test_options_are_fixed_once_open(make_event):
    event = make_event("approval")

    with pytest.raises(LifecycleError):
        lifecycle.add_option(event.id, {"key": "C"})


def test_options_can_be_added_while_pending(make_event):
    event = make_event("approval", open_now=False)

    lifecycle.add_option(event.id, {"key": "C", "title": "Community garden"})

    assert [option.key for option in event.options] == ["A", "B", "C"]


def test_open_is_idempotent(make_event):
    event = make_event("approval")

    lifecycle.open_vote_event(event.id)

    assert event.status == "open"
    assert _event_types(event).count("status_changed") == 2


def test_sync_opens_and_closes_on_schedule(make_event):
    event = make_event("approval", open_now=False, starts_in=timedelta(hours=1))
    start_at, end_at = event.start_at, event.end_at

    lifecycle.sync_event_status(event.id, now=start_at - timedelta(minutes=1))
    assert event.status == "pending"

    lifecycle.sync_event_status(event.id, now=start_at)
    assert event.status == "open"

    changed = lifecycle.sync_due_events(now=end_at + timedelta(seconds=1))
    assert changed == [(event.id, "open", "closed")]
    assert event.status == "closed"


def test_cancel_from_open_and_not_from_completed(make_event, voter):
    cancelled = make_event("approval")
    lifecycle.cancel_vote_event(cancelled.id, actor="admin", reason="duplicate")
    assert cancelled.status == "cancelled"
    with pytest.raises(LifecycleError):
        lifecycle.close_and_tally(cancelled.id)
    assert TallyResult.query.filter_by(event_id=cancelled.id).count() == 0

    completed = make_event("approval")
    lifecycle.close_and_tally(completed.id)
    with pytest.raises(LifecycleError):
        lifecycle.cancel_vote_event(completed.id)


def test_result_not_available_before_tally(make_event):
    event = make_event("approval")

    with pytest.raises(ResultNotAvailable):
        lifecycle.get_result(event.id)


def test_close_and_tally_completes_and_is_idempotent(make_event, voter):
    event = make_event("simple_majority", parameters={"quorum": 3})
    for voter_id, choice in (("v1", "A"), ("v2", "A"), ("v3", "B")):
        submit_ballot(event.id, voter(voter_id), [choice])

    result = lifecycle.close_and_tally(event.id, actor="clerk")

    assert event.status == "completed"
    assert result.quorum_met is True
    assert result.counted_by == "clerk"
    assert [row["option"] for row in result.payload["winning_options"]] == ["A"]

    again = lifecycle.close_and_tally(event.id, actor="someone-else")

    assert again.id == result.id
    assert again.counted_by == "clerk"
    assert TallyResult.query.filter_by(event_id=event.id).count() == 1
    assert lifecycle.get_result(event.id).audit_hash == result.audit_hash
    assert _event_types(event)[-1] == "tally_verified"


def test_tally_completed_signal_is_sent_once(make_event, voter):
    event = make_event("approval")
    submit_ballot(event.id, voter("v1"), ["A"])
    received = []

    def receiver(sender, event, result):
        received.append(result.event_id)

    with tally_completed.connected_to(receiver):
        lifecycle.close_and_tally(event.id)
        lifecycle.close_and_tally(event.id)

    assert received == [event.id]


def test_receipts_survive_tallying(make_event, voter):
    event = make_event("ranked_choice", options=("X", "Y", "Z"))
    receipts = {
        "v1": submit_ballot(event.id, voter("v1"), ["X", "Y"]).receipt_hash,
        "v2": submit_ballot(event.id, voter("v2"), {"ranks": {"1": "Z"}}).receipt_hash,
    }

    lifecycle.close_and_tally(event.id)

    for voter_id, receipt_hash in receipts.items():
        assert verify_receipt(event.id, voter_id, receipt_hash) is True


def test_restart_from_counting_matches_independent_recount(make_event, voter):
    event = make_event("quadratic", options=("P", "Q"), parameters={"total_budget": 9})
    submit_ballot(event.id, voter("v1"), {"weights": {"P": 3}})
    submit_ballot(event.id, voter("v2"), {"weights": {"P": 1, "Q": 2}})

    # Simulate a crash after intake was frozen but before the result was stored.
    event.status = "counting"
    db.session.commit()

    result = lifecycle.close_and_tally(event.id)
    assert event.status == "completed"

    export = audit.build_audit_export(event)
    recounted, audit_hash, mismatched = audit.recompute_from_export(
        EventSpec.from_model(event), export
    )
    assert mismatched == []
    assert audit_hash == result.audit_hash
    assert audit.canonical_json(recounted) == audit.canonical_json(result.payload)


def test_audit_digest_covers_only_counted_ballots(make_event, voter):
    event = make_event("simple_majority")
    submit_ballot(event.id, voter("v1"), ["A"])
    replacement = submit_ballot(event.id, voter("v1"), ["B"])
    other = submit_ballot(event.id, voter("v2"), ["B"])

    result = lifecycle.close_and_tally(event.id)

    expected = audit.compute_audit_digest(
        [
            (replacement.ballot_id, replacement.receipt_hash),
            (other.ballot_id, other.receipt_hash),
        ]
    )
    assert result.audit_hash == expected
    assert result.ballot_count == 2


def test_tampered_ballot_is_detected_on_recompute(make_event, voter):
    event = make_event("simple_majority")
    receipt = submit_ballot(event.id, voter("v1"), ["A"])
    submit_ballot(event.id, voter("v2"), ["A"])
    lifecycle.close_and_tally(event.id)

    ballot = db.session.get(Ballot, receipt.ballot_id)
    ballot.content = {"options": ["B"]}
    db.session.commit()

    with pytest.raises(TallyError) as excinfo:
        lifecycle.close_and_tally(event.id)

    assert excinfo.value.code == "InconsistentBallotData"
    assert verify_receipt(event.id, "v1", receipt.receipt_hash) is False
    assert "tally_mismatch" in _event_types(event)


def test_inconsistent_ballot_leaves_event_counting(make_event, voter):
    event = make_event("approval")
    submit_ballot(event.id, voter("v1"), ["A"])

    stray = Ballot(
        event_id=event.id,
        voter_id="v9",
        content={"options": ["Z"]},
        receipt_hash=audit.compute_receipt(
            event_id=event.id, method="approval", content={"options": ["Z"]}
        ),
    )
    db.session.add(stray)
    db.session.flush()
    db.session.add(BallotSlot(event_id=event.id, voter_id="v9", ballot_id=stray.id))
    db.session.commit()

    with pytest.raises(TallyError) as excinfo:
        lifecycle.close_and_tally(event.id)

    assert excinfo.value.code == "InconsistentBallotData"
    assert event.status == "counting"
    assert TallyResult.query.count() == 0
    assert _event_types(event)[-1] == "tally_failed"


def test_tally_timeout_leaves_event_counting(make_event, voter, monkeypatch):
    event = make_event("approval")
    submit_ballot(event.id, voter("v1"), ["A"])

    def slow_tally(*args, **kwargs):
        raise TallyError(TallyError.TIMED_OUT, "too slow")

    monkeypatch.setattr(lifecycle, "tally", slow_tally)

    with pytest.raises(TallyError) as excinfo:
        lifecycle.close_and_tally(event.id)

    assert excinfo.value.code == "TallyTimedOut"
    assert event.status == "counting"

    monkeypatch.undo()
    result = lifecycle.close_and_tally(event.id)
    assert result.ballot_count == 1


def test_event_view_reports_live_participation(make_event, voter):
    event = make_event("approval", options=("A", "B", "C"))
    submit_ballot(event.id, voter("v1"), ["A"])
    submit_ballot(event.id, voter("v1"), ["B"])
    submit_ballot(event.id, voter("v2"), ["C"])

    view = lifecycle.event_view(event.id)

    assert view["status"] == "open"
    assert view["participation"] == 2
    assert [option["key"] for option in view["options"]] == ["A", "B", "C"]


def test_cancel_during_counting_stores_no_result(make_event, voter, monkeypatch):
    event = make_event("approval")
    submit_ballot(event.id, voter("v1"), ["A"])
    real_tally = lifecycle.tally

    def cancel_then_tally(*args, **kwargs):
        # An admin cancels from another connection while the count runs.
        with db.engine.begin() as connection:
            connection.execute(
                text("UPDATE vote_events SET status = 'cancelled' WHERE id = :id"),
                {"id": event.id},
            )
        return real_tally(*args, **kwargs)

    monkeypatch.setattr(lifecycle, "tally", cancel_then_tally)

    with pytest.raises(LifecycleError):
        lifecycle.close_and_tally(event.id)

    assert db.session.get(VoteEvent, event.id).status == "cancelled"
    assert TallyResult.query.filter_by(event_id=event.id).count() == 0
