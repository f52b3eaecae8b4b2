from datetime import timedelta
from types import SimpleNamespace

import pytest

from civictally.services.eligibility import (
    Voter,
    can_vote,
    meets_access_level,
    verification_level_from_flags,
)
from civictally.services.errors import EligibilityError
from civictally.timeutil import utcnow


def _event(status="open", level=2, groups=(), opens=-1, closes=1):
    now = utcnow()
    return SimpleNamespace(
        status=status,
        start_at=now + timedelta(hours=opens),
        end_at=now + timedelta(hours=closes),
        min_verification_level=level,
        allowed_groups=list(groups),
    )


def test_verified_voter_may_vote():
    decision = can_vote(Voter("v1", verification_level=2), _event())

    assert decision.allowed is True


def test_insufficient_verification_is_denied():
    decision = can_vote(Voter("v1", verification_level=1), _event(level=3))

    assert decision.allowed is False
    assert decision.reason == "InsufficientVerification"


def test_group_restriction():
    event = _event(groups=("district-4", "district-5"))

    outsider = can_vote(Voter("v1", 2, frozenset({"district-1"})), event)
    member = can_vote(Voter("v2", 2, frozenset({"district-1", "district-5"})), event)

    assert outsider.reason == "NotInAllowedGroup"
    assert member.allowed is True


def test_outside_time_window_is_closed():
    decision = can_vote(Voter("v1", 4), _event(opens=1, closes=2))

    assert decision.reason == "VotingClosed"


def test_status_other_than_open_is_closed():
    decision = can_vote(Voter("v1", 4), _event(status="closed"))

    assert decision.reason == "VotingClosed"


def test_raise_if_denied_carries_reason():
    decision = can_vote(Voter("v1", 0), _event(level=1))

    with pytest.raises(EligibilityError) as excinfo:
        decision.raise_if_denied()

    assert excinfo.value.code == "InsufficientVerification"
    assert excinfo.value.status_code == 403


def test_voter_level_must_be_in_range():
    with pytest.raises(ValueError):
        Voter("v1", verification_level=7)


def test_verification_level_from_completed_steps():
    assert verification_level_from_flags({}) == 0
    assert verification_level_from_flags({"email": True, "phone": True}) == 2
    assert verification_level_from_flags({"email": True, "government_id": True}) == 4


def test_process_access_levels():
    assert meets_access_level(0, "open") is True
    assert meets_access_level(2, "resident") is False
    assert meets_access_level(3, "resident") is True
    assert meets_access_level(4, "invited") is False
