from civictally.services.voting.deadline import Deadline
from civictally.services.voting.knapsack import tally_knapsack
from civictally.services.voting.majority import tally_approval, tally_simple_majority
from civictally.services.voting.quadratic import tally_quadratic
from civictally.services.voting.ranked import tally_ranked_choice

TALLY_FUNCTIONS = {
    "simple_majority": tally_simple_majority,
    "approval": tally_approval,
    "ranked_choice": tally_ranked_choice,
    "quadratic": tally_quadratic,
    "knapsack": tally_knapsack,
}

COUNT_METHODS = {
    "simple_majority": "Plurality with majority threshold v1",
    "approval": "Approval count with majority threshold v1",
    "ranked_choice": "Instant-runoff, simultaneous lowest elimination v1",
    "quadratic": "Quadratic weight sum v1",
    "knapsack": "Greedy full-funding knapsack by support v1",
}


def _participation(spec, ballot_count):
    percentage = None
    if spec.eligible_voter_count:
        percentage = round(ballot_count / spec.eligible_voter_count * 100, 2)
    return {
        "total": ballot_count,
        "eligible": spec.eligible_voter_count,
        "percentage": percentage,
    }


def tally(spec, ballots, timeout=None):
    """Count ``ballots`` (normalized, one per voter) for the event in ``spec``.

    Deterministic: the same spec and ballot list always produce the same
    dict. Winners are withheld when participation is below quorum, but the
    counts are still reported.
    """
    deadline = Deadline(timeout)
    outcome = TALLY_FUNCTIONS[spec.method](spec, ballots, deadline)

    ballot_count = len(ballots)
    quorum_met = spec.quorum is None or ballot_count >= spec.quorum
    winners = outcome.pop("winners")
    if not quorum_met:
        winners = []
        for row in outcome["option_results"]:
            if "funded" in row:
                row["funded"] = False

    rows = {row["option"]: row for row in outcome["option_results"]}
    winning_options = [
        {
            "option": key,
            "votes": rows[key]["votes"],
            "percentage": rows[key]["percentage"],
        }
        for key in winners
    ]

    return {
        "event_id": spec.event_id,
        "method": spec.method,
        "count_method": COUNT_METHODS[spec.method],
        "participation": _participation(spec, ballot_count),
        "quorum": spec.quorum,
        "quorum_met": quorum_met,
        "winning_options": winning_options,
        **outcome,
    }
