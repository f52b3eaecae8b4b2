def tally_knapsack(spec, ballots, deadline):
    """Greedy full-funding allocation in order of ballot support.

    Support is the number of ballots selecting an option; equal support
    prefers the cheaper option so more items fit. An option that does not
    fit in the remaining budget is skipped, never partially funded.
    """
    support = {key: 0 for key in spec.option_keys}
    requested = {key: 0 for key in spec.option_keys}

    for ballot in ballots:
        deadline.check()
        for key, amount in ballot.allocations:
            support[key] += 1
            requested[key] += amount

    position = {key: index for index, key in enumerate(spec.option_keys)}
    costs = {option.key: option.cost for option in spec.options}
    order = sorted(
        spec.option_keys,
        key=lambda key: (-support[key], costs[key], position[key]),
    )

    remaining = spec.total_budget
    funded = []
    skipped = []
    for key in order:
        deadline.check()
        if support[key] == 0:
            continue
        if costs[key] <= remaining:
            funded.append(key)
            remaining -= costs[key]
        else:
            skipped.append(key)

    ballot_count = len(ballots)
    titles = {option.key: option.title for option in spec.options}
    option_results = [
        {
            "option": key,
            "title": titles[key],
            "votes": support[key],
            "requested": requested[key],
            "cost": costs[key],
            "funded": key in funded,
            "percentage": round(support[key] / ballot_count * 100, 2)
            if ballot_count > 0
            else 0.0,
        }
        for key in order
    ]

    return {
        "option_results": option_results,
        "leading_options": list(funded),
        "winners": list(funded),
        "is_tie": False,
        "total_budget": spec.total_budget,
        "allocated": spec.total_budget - remaining,
        "remaining_budget": remaining,
        "skipped_options": skipped,
    }
