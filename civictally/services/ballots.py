from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from civictally.extensions import db
from civictally.models import AuditLogEntry, Ballot, BallotSlot, VoteEvent
from civictally.services import audit
from civictally.services.eligibility import can_vote, is_accepting_ballots
from civictally.services.errors import ConcurrencyConflict, EligibilityError, EventNotFound
from civictally.services.lifecycle import sync_event_status
from civictally.services.voting import EventSpec, validate_ballot
from civictally.timeutil import as_utc, utcnow


@dataclass(frozen=True)
class SubmissionReceipt:
    event_id: int
    ballot_id: int
    receipt_hash: str
    replaced_receipt_hash: str = None


def _load_event_for_submit(event_id):
    # Shared row lock: close/cancel take an exclusive one, so a status change
    # waits for in-flight submissions and later ones see the new status.
    event = (
        VoteEvent.query.filter_by(id=event_id)
        .with_for_update(read=True)
        .populate_existing()
        .one_or_none()
    )
    if event is None:
        raise EventNotFound(event_id)
    return event


def _swap_slot(event_id, voter_id, expected_version, ballot_id):
    """Point the voter's slot at ``ballot_id`` if nobody moved it first."""
    outcome = db.session.execute(
        update(BallotSlot)
        .where(
            BallotSlot.event_id == event_id,
            BallotSlot.voter_id == voter_id,
            BallotSlot.version == expected_version,
        )
        .values(ballot_id=ballot_id, version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    return outcome.rowcount == 1


def _claim_empty_slot(event_id, voter_id, ballot_id):
    # A concurrent first ballot from the same voter wins the primary key.
    db.session.add(
        BallotSlot(event_id=event_id, voter_id=voter_id, ballot_id=ballot_id, version=1)
    )
    try:
        db.session.flush()
    except IntegrityError:
        return False
    return True


def _record_quorum_reached(event):
    if not event.quorum:
        return
    participation = BallotSlot.query.filter_by(event_id=event.id).count()
    if participation < event.quorum:
        return
    already_logged = AuditLogEntry.query.filter_by(
        event_id=event.id, event_type="quorum_reached"
    ).first()
    if already_logged is None:
        audit.record(
            event,
            "quorum_reached",
            {"quorum": event.quorum, "participation": participation},
        )


def _submit_once(event_id, voter, raw_ballot, now):
    event = _load_event_for_submit(event_id)
    can_vote(voter, event, now).raise_if_denied()

    spec = EventSpec.from_model(event)
    normalized = validate_ballot(spec, raw_ballot)
    content = normalized.to_content()
    receipt_hash = audit.compute_receipt(
        event_id=event.id, method=event.method, content=content
    )

    slot = db.session.get(BallotSlot, (event.id, voter.voter_id))
    expected_version = slot.version if slot is not None else None
    previous_ballot_id = slot.ballot_id if slot is not None else None

    ballot = Ballot(
        event_id=event.id,
        voter_id=voter.voter_id,
        content=content,
        receipt_hash=receipt_hash,
        submitted_at=now,
    )
    db.session.add(ballot)
    db.session.flush()

    if expected_version is None:
        claimed = _claim_empty_slot(event.id, voter.voter_id, ballot.id)
    else:
        claimed = _swap_slot(event.id, voter.voter_id, expected_version, ballot.id)
    if not claimed:
        raise ConcurrencyConflict()

    replaced_receipt_hash = None
    if previous_ballot_id is not None:
        replaced_receipt_hash = db.session.get(Ballot, previous_ballot_id).receipt_hash

    # Re-check at commit time; the gate above ran before the writes.
    db.session.refresh(event, attribute_names=["status"])
    if not is_accepting_ballots(event, now):
        raise EligibilityError(
            EligibilityError.VOTING_CLOSED, "This vote closed before the ballot was stored."
        )

    payload = {"receipt": receipt_hash}
    if replaced_receipt_hash:
        payload["supersedes"] = replaced_receipt_hash
    audit.record(event, "ballot_submitted", payload)
    _record_quorum_reached(event)

    db.session.commit()
    return SubmissionReceipt(
        event_id=event.id,
        ballot_id=ballot.id,
        receipt_hash=receipt_hash,
        replaced_receipt_hash=replaced_receipt_hash,
    )


def submit_ballot(event_id, voter, raw_ballot, now=None):
    """Validate and store ``voter``'s ballot, replacing any earlier one.

    At most one ballot per (event, voter) is counted: the slot pointer is
    moved with a compare-and-swap on its version, and a lost race is retried
    once against the fresh slot before ConcurrencyConflict is raised.
    """
    now = as_utc(now) if now is not None else utcnow()
    sync_event_status(event_id, now=now)

    for attempt in range(2):
        try:
            receipt = _submit_once(event_id, voter, raw_ballot, now)
        except ConcurrencyConflict:
            db.session.rollback()
            if attempt:
                current_app.logger.warning(
                    "Ballot slot conflict persisted for event %s voter %s",
                    event_id,
                    voter.voter_id,
                )
                raise
            current_app.logger.info(
                "Ballot slot conflict for event %s voter %s, retrying",
                event_id,
                voter.voter_id,
            )
            continue
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Ballot %s accepted for event %s%s",
            receipt.ballot_id,
            event_id,
            " (replacing an earlier ballot)" if receipt.replaced_receipt_hash else "",
        )
        return receipt


def counted_ballot_for(event_id, voter_id):
    slot = db.session.get(BallotSlot, (event_id, voter_id))
    if slot is None:
        return None
    return db.session.get(Ballot, slot.ballot_id)


def voter_ballot_history(event_id, voter_id):
    return (
        Ballot.query.filter_by(event_id=event_id, voter_id=voter_id)
        .order_by(Ballot.id)
        .all()
    )


def participation_count(event_id):
    return BallotSlot.query.filter_by(event_id=event_id).count()


def verify_receipt(event_id, voter_id, receipt_hash):
    """True if ``receipt_hash`` belongs to the voter's counted ballot."""
    if db.session.get(VoteEvent, event_id) is None:
        raise EventNotFound(event_id)
    ballot = counted_ballot_for(event_id, voter_id)
    if ballot is None:
        return False
    return audit.verify_ballot_receipt(ballot, receipt_hash)
