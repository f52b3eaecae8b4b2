import json

from flask import current_app
from sqlalchemy.exc import IntegrityError

from civictally.extensions import db, tally_completed
from civictally.models import BallotSlot, Option, TallyResult, VoteEvent
from civictally.models.option import OPTION_TYPES
from civictally.models.vote_event import METHODS
from civictally.services import audit
from civictally.services.eligibility import MAX_VERIFICATION_LEVEL
from civictally.services.errors import (
    EventConfigurationError,
    EventNotFound,
    LifecycleError,
    ResultNotAvailable,
    TallyError,
)
from civictally.services.voting import EventSpec, ballot_from_content, tally
from civictally.timeutil import as_utc, utcnow

EDITABLE_STATUSES = ("draft", "pending")
PRE_COMPLETED_STATUSES = ("draft", "pending", "open", "closed", "counting")


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _optional_int(data, name, minimum=0):
    value = data.get(name)
    if value is None:
        return None
    if not _is_int(value) or value < minimum:
        raise EventConfigurationError(f"'{name}' must be a whole number >= {minimum}.")
    return value


def _load_event(event_id, lock=False):
    query = VoteEvent.query.filter_by(id=event_id)
    if lock:
        # Reload attributes too; the identity map may hold a pre-lock copy.
        query = query.with_for_update().populate_existing()
    event = query.one_or_none()
    if event is None:
        raise EventNotFound(event_id)
    return event


def _build_option(event, data, position):
    if not isinstance(data, dict):
        data = {"key": data}
    key = data.get("key")
    if not isinstance(key, str) or not key.strip():
        raise EventConfigurationError("Every option needs a non-empty 'key'.")
    option_type = data.get("type") or (
        "budget_item" if event.method == "knapsack" else "text_option"
    )
    if option_type not in OPTION_TYPES:
        raise EventConfigurationError(f"Unknown option type '{option_type}'.")
    cost = _optional_int(data, "cost")
    if event.method == "knapsack" and cost is None:
        raise EventConfigurationError(f"Budget item '{key}' needs a cost.")

    return Option(
        key=key.strip(),
        type=option_type,
        title=(data.get("title") or key).strip(),
        description=data.get("description"),
        category=data.get("category"),
        cost=cost,
        position=position,
    )


def _check_configuration(event, options):
    """Method-specific parameter checks, run at creation and on every edit."""
    if event.end_at < event.start_at:
        raise EventConfigurationError("The vote cannot end before it starts.")

    keys = [option.key for option in options]
    if len(set(keys)) != len(keys):
        raise EventConfigurationError("Option keys must be unique within a vote.")

    if event.max_options is not None and event.max_options < event.min_options:
        raise EventConfigurationError("'max_options' cannot be below 'min_options'.")

    if event.method == "simple_majority" and (
        event.min_options != 1 or event.max_options != 1
    ):
        raise EventConfigurationError("Simple majority ballots select exactly one option.")

    if event.method in ("quadratic", "knapsack") and event.total_budget is None:
        raise EventConfigurationError(f"A {event.method} vote needs 'total_budget'.")

    threshold = event.majority_threshold_pct
    if threshold is not None and not 0 <= threshold <= 100:
        raise EventConfigurationError("'majority_threshold_pct' must be within 0..100.")


def create_vote_event(data, created_by=None):
    """Create a draft vote event with its options from a plain dict."""
    method = data.get("method")
    if method not in METHODS:
        raise EventConfigurationError(f"Unknown voting method '{method}'.")

    title = (data.get("title") or "").strip()
    if not title:
        raise EventConfigurationError("A vote needs a title.")

    try:
        start_at = as_utc(data.get("start_at"))
        end_at = as_utc(data.get("end_at"))
    except (TypeError, ValueError):
        raise EventConfigurationError("'start_at' and 'end_at' must be ISO datetimes.") from None
    if start_at is None or end_at is None:
        raise EventConfigurationError("A vote needs 'start_at' and 'end_at'.")

    eligibility = data.get("eligibility") or {}
    level = eligibility.get("verification_level", 1)
    if not _is_int(level) or not 0 <= level <= MAX_VERIFICATION_LEVEL:
        raise EventConfigurationError(
            f"'verification_level' must be within 0..{MAX_VERIFICATION_LEVEL}."
        )
    allowed_groups = eligibility.get("allowed_groups") or []
    if not all(isinstance(group, str) for group in allowed_groups):
        raise EventConfigurationError("'allowed_groups' must be a list of names.")

    parameters = data.get("parameters") or {}
    min_options = _optional_int(parameters, "min_options")
    max_options = _optional_int(parameters, "max_options", minimum=1)
    if method == "simple_majority":
        min_options = 1 if min_options is None else min_options
        max_options = 1 if max_options is None else max_options

    total_budget = _optional_int(parameters, "total_budget")
    if method == "quadratic" and total_budget is None:
        total_budget = current_app.config["QUADRATIC_DEFAULT_CREDITS"]

    threshold = parameters.get("majority_threshold_pct")
    if threshold is not None and (
        isinstance(threshold, bool) or not isinstance(threshold, (int, float))
    ):
        raise EventConfigurationError("'majority_threshold_pct' must be a number.")
    if threshold is None and method in ("simple_majority", "approval"):
        threshold = current_app.config["DEFAULT_MAJORITY_THRESHOLD_PCT"]

    event = VoteEvent(
        process_id=data.get("process_id"),
        title=title,
        description=data.get("description"),
        method=method,
        status="draft",
        start_at=start_at,
        end_at=end_at,
        min_verification_level=level,
        allowed_groups=sorted(set(allowed_groups)),
        min_options=1 if min_options is None else min_options,
        max_options=max_options,
        total_budget=total_budget,
        quorum=_optional_int(parameters, "quorum"),
        majority_threshold_pct=float(threshold) if threshold is not None else None,
        eligible_voter_count=_optional_int(data, "eligible_voter_count", minimum=1),
        created_by=created_by,
    )

    options = [
        _build_option(event, option_data, position)
        for position, option_data in enumerate(data.get("options") or [])
    ]
    _check_configuration(event, options)

    event.options = options
    db.session.add(event)
    db.session.flush()
    audit.record(event, "event_created", {"method": method, "actor": created_by})
    db.session.commit()

    current_app.logger.info("Vote event %s created (%s)", event.id, method)
    return event


def add_option(event_id, data):
    event = _load_event(event_id, lock=True)
    if event.status not in EDITABLE_STATUSES:
        db.session.rollback()
        raise LifecycleError("Options are fixed once a vote has opened.")

    option = _build_option(event, data, position=len(event.options))
    try:
        _check_configuration(event, [*event.options, option])
    except EventConfigurationError:
        db.session.rollback()
        raise

    event.options.append(option)
    db.session.commit()
    return option


def _transition(event, new_status, actor=None, **extra):
    old_status = event.status
    event.status = new_status
    payload = {"from": old_status, "to": new_status}
    if actor:
        payload["actor"] = actor
    payload.update(extra)
    audit.record(event, "status_changed", payload)
    current_app.logger.info(
        "Vote event %s: %s -> %s", event.id, old_status, new_status
    )


def publish_vote_event(event_id, actor=None):
    event = _load_event(event_id, lock=True)
    if event.status == "pending":
        db.session.rollback()
        return event
    if event.status != "draft":
        db.session.rollback()
        raise LifecycleError(f"Cannot publish a vote that is {event.status}.")
    if not event.options:
        db.session.rollback()
        raise EventConfigurationError("A vote needs at least one option.")

    _transition(event, "pending", actor)
    db.session.commit()
    return event


def open_vote_event(event_id, actor=None):
    event = _load_event(event_id, lock=True)
    if event.status == "open":
        db.session.rollback()
        return event
    if event.status != "pending":
        db.session.rollback()
        raise LifecycleError(f"Cannot open a vote that is {event.status}.")

    _transition(event, "open", actor)
    db.session.commit()
    return event


def close_vote_event(event_id, actor=None):
    event = _load_event(event_id, lock=True)
    if event.status in ("closed", "counting", "completed"):
        db.session.rollback()
        return event
    if event.status != "open":
        db.session.rollback()
        raise LifecycleError(f"Cannot close a vote that is {event.status}.")

    _transition(event, "closed", actor)
    db.session.commit()
    return event


def cancel_vote_event(event_id, actor=None, reason=None):
    event = _load_event(event_id, lock=True)
    if event.status == "cancelled":
        db.session.rollback()
        return event
    if event.status not in PRE_COMPLETED_STATUSES:
        db.session.rollback()
        raise LifecycleError("A completed vote cannot be cancelled.")

    _transition(event, "cancelled", actor, reason=reason)
    db.session.commit()
    return event


def sync_event_status(event_id, now=None):
    """Apply the time-triggered transitions: open at start, close after end.

    Idempotent; safe to call before every submission or from a scheduler.
    """
    now = as_utc(now) if now is not None else utcnow()
    event = _load_event(event_id, lock=True)
    changed = False

    if event.status == "pending" and event.start_at <= now:
        _transition(event, "open", reason="start_at reached")
        changed = True
    if event.status == "open" and now > event.end_at:
        _transition(event, "closed", reason="end_at reached")
        changed = True

    if changed:
        db.session.commit()
    else:
        db.session.rollback()
    return event


def sync_due_events(now=None):
    now = as_utc(now) if now is not None else utcnow()
    due = (
        VoteEvent.query.with_entities(VoteEvent.id)
        .filter(VoteEvent.status.in_(("pending", "open")))
        .order_by(VoteEvent.id)
        .all()
    )
    db.session.rollback()

    changed = []
    for (event_id,) in due:
        before = db.session.get(VoteEvent, event_id).status
        event = sync_event_status(event_id, now=now)
        if event.status != before:
            changed.append((event.id, before, event.status))
    return changed


def _comparable(payload):
    return json.loads(audit.canonical_json(payload))


def _compute_result(event):
    spec = EventSpec.from_model(event)
    ballots = audit.counted_ballots(event)
    normalized = [ballot_from_content(spec, ballot.content) for ballot in ballots]
    result = tally(
        spec, normalized, timeout=current_app.config["TALLY_TIMEOUT_SECONDS"]
    )
    result["audit_hash"] = audit.compute_audit_digest(
        (ballot.id, ballot.receipt_hash) for ballot in ballots
    )
    return _comparable(result)


def _verify_existing(event, existing, recomputed=None):
    if recomputed is None:
        recomputed = _compute_result(event)
    if recomputed != _comparable(existing.payload):
        audit.record(
            event,
            "tally_mismatch",
            {"stored": existing.audit_hash, "recomputed": recomputed["audit_hash"]},
        )
        db.session.commit()
        current_app.logger.error(
            "Recomputed tally for vote event %s does not match the stored result",
            event.id,
        )
        raise TallyError(
            TallyError.INCONSISTENT_BALLOT_DATA,
            "Stored result no longer matches the stored ballots.",
        )

    if event.status == "counting":
        _transition(event, "completed", reason="result already stored")
    audit.record(event, "tally_verified", {"audit_hash": existing.audit_hash})
    db.session.commit()
    current_app.logger.info("Stored result for vote event %s re-verified", event.id)
    return existing


def _record_failure(event_id, exc, actor):
    db.session.rollback()
    event = _load_event(event_id)
    payload = {"error": exc.message if hasattr(exc, "message") else str(exc)}
    payload["error_type"] = getattr(exc, "code", type(exc).__name__)
    if actor:
        payload["actor"] = actor
    audit.record(event, "tally_failed", payload)
    db.session.commit()


def close_and_tally(event_id, actor=None, now=None):
    """Freeze intake, count the frozen ballot set once and store the result.

    Re-running is safe: a vote left in ``counting`` by a crash is counted
    again from the same ballots, and a completed vote is recomputed and
    compared against its stored result instead of being stored twice.
    """
    now = as_utc(now) if now is not None else utcnow()
    event = _load_event(event_id, lock=True)

    if event.status == "cancelled":
        db.session.rollback()
        raise LifecycleError("A cancelled vote has no result.")
    if event.status in ("draft", "pending"):
        db.session.rollback()
        raise LifecycleError(f"Cannot tally a vote that is {event.status}.")

    existing = TallyResult.query.filter_by(event_id=event.id).one_or_none()
    if existing is not None:
        return _verify_existing(event, existing)

    if event.status == "open":
        _transition(event, "closed", actor)
    if event.status == "closed":
        _transition(event, "counting", actor)
    db.session.commit()

    current_app.logger.info("Counting vote event %s", event_id)
    try:
        event = _load_event(event_id)
        payload = _compute_result(event)
    except TallyError as exc:
        current_app.logger.error(
            "Tally of vote event %s failed: %s", event_id, exc.message, exc_info=True
        )
        _record_failure(event_id, exc, actor)
        raise

    event = _load_event(event_id, lock=True)
    existing = TallyResult.query.filter_by(event_id=event.id).one_or_none()
    if existing is not None:
        return _verify_existing(event, existing, recomputed=payload)
    if event.status != "counting":
        db.session.rollback()
        raise LifecycleError(f"Vote event {event_id} became {event.status} while counting.")

    result = TallyResult(
        event_id=event.id,
        payload=payload,
        audit_hash=payload["audit_hash"],
        ballot_count=payload["participation"]["total"],
        quorum_met=payload["quorum_met"],
        count_method=payload["count_method"],
        counted_by=actor,
        counted_at=now,
    )
    db.session.add(result)
    _transition(event, "completed", actor)
    audit.record(
        event,
        "tally_completed",
        {
            "audit_hash": result.audit_hash,
            "ballots": result.ballot_count,
            "quorum_met": result.quorum_met,
            "winning_options": [row["option"] for row in payload["winning_options"]],
        },
    )
    try:
        db.session.commit()
    except IntegrityError:
        # Another worker stored the result between our check and commit.
        db.session.rollback()
        event = _load_event(event_id, lock=True)
        existing = TallyResult.query.filter_by(event_id=event.id).one()
        return _verify_existing(event, existing, recomputed=payload)

    current_app.logger.info(
        "Vote event %s completed with %s ballots", event_id, result.ballot_count
    )
    tally_completed.send(current_app._get_current_object(), event=event, result=result)
    return result


def get_result(event_id):
    event = _load_event(event_id)
    if event.status != "completed" or event.result is None:
        raise ResultNotAvailable(event_id)
    return event.result


def event_view(event_id):
    event = _load_event(event_id)
    return {
        "id": event.id,
        "process_id": event.process_id,
        "title": event.title,
        "description": event.description,
        "method": event.method,
        "status": event.status,
        "start_at": event.start_at.isoformat(),
        "end_at": event.end_at.isoformat(),
        "eligibility": {
            "verification_level": event.min_verification_level,
            "allowed_groups": list(event.allowed_groups or []),
        },
        "parameters": {
            "min_options": event.min_options,
            "max_options": event.max_options,
            "total_budget": event.total_budget,
            "quorum": event.quorum,
            "majority_threshold_pct": event.majority_threshold_pct,
        },
        "options": [
            {
                "key": option.key,
                "type": option.type,
                "title": option.title,
                "description": option.description,
                "category": option.category,
                "cost": option.cost,
            }
            for option in event.options
        ],
        "participation": BallotSlot.query.filter_by(event_id=event.id).count(),
        "created_by": event.created_by,
    }


def result_view(result):
    return {
        **result.payload,
        "verification": {
            "count_method": result.count_method,
            "counted_by": result.counted_by,
            "counted_at": result.counted_at.isoformat(),
            "audit_hash": result.audit_hash,
        },
    }
