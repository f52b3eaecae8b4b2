def _percent(value, total):
    return round(value / total * 100, 2) if total > 0 else 0.0


def _rank_by_votes(spec, counts, ballot_count):
    option_results = []
    for option in spec.options:
        votes = counts.get(option.key, 0)
        option_results.append(
            {
                "option": option.key,
                "title": option.title,
                "votes": votes,
                "percentage": _percent(votes, ballot_count),
            }
        )

    position = {key: index for index, key in enumerate(spec.option_keys)}
    option_results.sort(key=lambda row: (-row["votes"], position[row["option"]]))

    top_votes = max(counts.values(), default=0)
    leading = []
    if top_votes > 0:
        leading = [row["option"] for row in option_results if row["votes"] == top_votes]

    threshold = spec.majority_threshold_pct
    if threshold is None:
        threshold = 50.0
    top_percentage = _percent(top_votes, ballot_count)
    majority_met = len(leading) == 1 and top_percentage >= threshold

    return {
        "option_results": option_results,
        "leading_options": leading,
        "winners": leading if majority_met else [],
        "is_tie": len(leading) > 1,
        "top_vote_count": top_votes,
        "majority_threshold_pct": threshold,
        "majority_met": majority_met,
    }


def tally_simple_majority(spec, ballots, deadline):
    counts = {key: 0 for key in spec.option_keys}
    for ballot in ballots:
        deadline.check()
        (choice,) = ballot.options
        counts[choice] += 1

    return _rank_by_votes(spec, counts, len(ballots))


def tally_approval(spec, ballots, deadline):
    points = {key: 0 for key in spec.option_keys}
    for ballot in ballots:
        deadline.check()
        for key in ballot.options:
            points[key] += 1

    result = _rank_by_votes(spec, points, len(ballots))
    result["total_approvals"] = sum(points.values())
    return result
