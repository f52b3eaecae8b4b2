from civictally.models.audit_log_entry import AuditLogEntry
from civictally.models.ballot import Ballot
from civictally.models.ballot_slot import BallotSlot
from civictally.models.option import Option
from civictally.models.tally_result import TallyResult
from civictally.models.vote_event import VoteEvent

__all__ = [
    "VoteEvent",
    "Option",
    "Ballot",
    "BallotSlot",
    "TallyResult",
    "AuditLogEntry",
]
