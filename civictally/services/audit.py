import hashlib
import hmac
import json

from civictally.extensions import db
from civictally.models import AuditLogEntry, Ballot, BallotSlot
from civictally.services.voting import ballot_from_content, tally


def canonical_json(payload):
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_receipt(*, event_id, method, content):
    """SHA-256 of the normalized ballot plus its event.

    Anyone holding the content can recompute it; nothing random goes in.
    """
    payload = {"event_id": event_id, "method": method, "content": content}
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def compute_audit_digest(receipts_by_ballot_id):
    """Hash of all counted receipts taken in ballot id order."""
    ordered = [
        receipt for _, receipt in sorted(receipts_by_ballot_id, key=lambda row: row[0])
    ]
    return hashlib.sha256("\n".join(ordered).encode("utf-8")).hexdigest()


def verify_ballot_receipt(ballot, receipt_hash):
    """True when ``receipt_hash`` matches both the stored receipt and the
    hash recomputed from the stored content."""
    if not receipt_hash:
        return False
    recomputed = compute_receipt(
        event_id=ballot.event_id,
        method=ballot.event.method,
        content=ballot.content,
    )
    return hmac.compare_digest(recomputed, receipt_hash) and hmac.compare_digest(
        ballot.receipt_hash, receipt_hash
    )


def counted_ballots(event):
    """The ballot each voter's slot points at, ordered by ballot id."""
    return (
        Ballot.query.join(BallotSlot, BallotSlot.ballot_id == Ballot.id)
        .filter(BallotSlot.event_id == event.id)
        .order_by(Ballot.id)
        .all()
    )


def build_audit_export(event, ballots=None):
    """Public ballot export: enough to re-run the tally and the digest.

    Voter ids are left out.
    """
    if ballots is None:
        ballots = counted_ballots(event)
    rows = [
        {
            "ballot_id": ballot.id,
            "content": ballot.content,
            "receipt": ballot.receipt_hash,
        }
        for ballot in ballots
    ]
    return {
        "event_id": event.id,
        "method": event.method,
        "ballots": rows,
        "audit_hash": compute_audit_digest(
            (row["ballot_id"], row["receipt"]) for row in rows
        ),
    }


def recompute_from_export(spec, export, timeout=None):
    """Independently re-derive the tally and digest from an audit export.

    Returns ``(result, audit_hash, mismatched_ballot_ids)`` where the last
    item lists rows whose receipt does not match their content.
    """
    mismatched = []
    normalized = []
    for row in sorted(export["ballots"], key=lambda row: row["ballot_id"]):
        expected = compute_receipt(
            event_id=spec.event_id, method=spec.method, content=row["content"]
        )
        if expected != row["receipt"]:
            mismatched.append(row["ballot_id"])
        normalized.append(ballot_from_content(spec, row["content"]))

    audit_hash = compute_audit_digest(
        (row["ballot_id"], row["receipt"]) for row in export["ballots"]
    )
    result = tally(spec, normalized, timeout=timeout)
    result["audit_hash"] = audit_hash
    return result, audit_hash, mismatched


def record(event, event_type, payload=None):
    entry = AuditLogEntry(
        event_id=event.id,
        event_type=event_type,
        payload=payload or {},
    )
    db.session.add(entry)
    return entry
