from civictally.services.voting.ballots import (
    EventSpec,
    OptionSpec,
    ballot_from_content,
    validate_ballot,
)
from civictally.services.voting.engine import COUNT_METHODS, tally
from civictally.services.voting.knapsack import tally_knapsack
from civictally.services.voting.majority import tally_approval, tally_simple_majority
from civictally.services.voting.quadratic import tally_quadratic
from civictally.services.voting.ranked import tally_ranked_choice

__all__ = [
    "COUNT_METHODS",
    "EventSpec",
    "OptionSpec",
    "ballot_from_content",
    "tally",
    "tally_approval",
    "tally_knapsack",
    "tally_quadratic",
    "tally_ranked_choice",
    "tally_simple_majority",
    "validate_ballot",
]
