from dataclasses import dataclass, field

from civictally.services.errors import EligibilityError
from civictally.timeutil import as_utc, utcnow

# 0=none, 1=email, 2=phone, 3=residency, 4=government ID
VERIFICATION_LEVELS = ("none", "email", "phone", "residency", "government_id")
MAX_VERIFICATION_LEVEL = len(VERIFICATION_LEVELS) - 1

# Process access levels and the verification level each one needs.
# "invited" needs an invitation, which no verification level grants.
ACCESS_LEVELS = {"open": 0, "verified": 1, "resident": 3, "invited": None}


def verification_level_from_flags(flags):
    """Highest verification step a voter has completed, 0 when none."""
    level = 0
    for index, name in enumerate(VERIFICATION_LEVELS[1:], start=1):
        if flags.get(name):
            level = index
    return level


def meets_access_level(verification_level, access_level):
    required = ACCESS_LEVELS.get(access_level)
    if required is None:
        return False
    return verification_level >= required


@dataclass(frozen=True)
class Voter:
    voter_id: str
    verification_level: int = 0
    groups: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        level = self.verification_level
        if isinstance(level, bool) or not isinstance(level, int):
            raise ValueError("verification_level must be an integer")
        if not 0 <= level <= MAX_VERIFICATION_LEVEL:
            raise ValueError(f"verification_level must be within 0..{MAX_VERIFICATION_LEVEL}")
        if not isinstance(self.groups, frozenset):
            object.__setattr__(self, "groups", frozenset(self.groups or ()))


@dataclass(frozen=True)
class EligibilityDecision:
    allowed: bool
    reason: str = None
    message: str = None

    def raise_if_denied(self):
        if not self.allowed:
            raise EligibilityError(self.reason, self.message)


def is_accepting_ballots(event, now=None):
    now = as_utc(now) if now is not None else utcnow()
    return event.status == "open" and event.start_at <= now <= event.end_at


def can_vote(voter, event, now=None):
    """Decide whether ``voter`` may cast a ballot into ``event`` right now.

    Reads only what it is given, so callers must pass a freshly loaded event
    at submission time.
    """
    if not is_accepting_ballots(event, now):
        return EligibilityDecision(
            False, EligibilityError.VOTING_CLOSED, "This vote is not open for ballots."
        )

    required = event.min_verification_level or 0
    if voter.verification_level < required:
        return EligibilityDecision(
            False,
            EligibilityError.INSUFFICIENT_VERIFICATION,
            f"This vote requires verification level {required} "
            f"({VERIFICATION_LEVELS[required]}).",
        )

    allowed_groups = set(event.allowed_groups or ())
    if allowed_groups and allowed_groups.isdisjoint(voter.groups):
        return EligibilityDecision(
            False,
            EligibilityError.NOT_IN_ALLOWED_GROUP,
            "This vote is restricted to members of specific groups.",
        )

    return EligibilityDecision(True)
