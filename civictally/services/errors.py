class VotingError(Exception):
    status_code = 400

    def __init__(self, code, message=None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code

    def to_dict(self):
        return {"ok": False, "error": self.code, "message": self.message}


class EligibilityError(VotingError):
    status_code = 403

    INSUFFICIENT_VERIFICATION = "InsufficientVerification"
    NOT_IN_ALLOWED_GROUP = "NotInAllowedGroup"
    VOTING_CLOSED = "VotingClosed"


class BallotValidationError(VotingError):
    UNKNOWN_OPTION = "UnknownOption"
    OPTION_COUNT_OUT_OF_RANGE = "OptionCountOutOfRange"
    INVALID_RANKING = "InvalidRanking"
    CREDIT_BUDGET_EXCEEDED = "CreditBudgetExceeded"
    BUDGET_EXCEEDED = "BudgetExceeded"
    INVALID_WEIGHT = "InvalidWeight"
    INVALID_ALLOCATION = "InvalidAllocation"
    MALFORMED_BALLOT = "MalformedBallot"


class ConcurrencyConflict(VotingError):
    status_code = 409

    def __init__(self, message="Ballot slot changed during submission."):
        super().__init__("ConcurrencyConflict", message)


class TallyError(VotingError):
    status_code = 500

    TIMED_OUT = "TallyTimedOut"
    INCONSISTENT_BALLOT_DATA = "InconsistentBallotData"


class EventConfigurationError(VotingError):
    def __init__(self, message):
        super().__init__("InvalidEventConfiguration", message)


class LifecycleError(VotingError):
    status_code = 409

    def __init__(self, message):
        super().__init__("InvalidTransition", message)


class EventNotFound(VotingError):
    status_code = 404

    def __init__(self, event_id):
        super().__init__("EventNotFound", f"Vote event {event_id} does not exist.")


class ResultNotAvailable(VotingError):
    status_code = 409

    def __init__(self, event_id):
        super().__init__(
            "NotYetAvailable", f"Vote event {event_id} has no result yet."
        )
