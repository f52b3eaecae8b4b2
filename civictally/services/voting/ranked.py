def _first_preferences(ballots, active):
    counts = {key: 0 for key in active}
    for ballot in ballots:
        for key in ballot.ranking:
            if key in counts:
                counts[key] += 1
                break
    return counts


def tally_ranked_choice(spec, ballots, deadline):
    """Instant-runoff over the remaining options.

    All options tied for the fewest first preferences are dropped together,
    unless that would drop every remaining option; then the tie stands and
    nobody is elected. Exhausted ballots leave the round's denominator.
    """
    titles = {option.key: option.title for option in spec.options}
    active = list(spec.option_keys)
    rounds = []
    round_logs = []
    winner = None
    unresolved_tie = []

    def names(keys):
        return ", ".join(titles[key] for key in keys)

    while active:
        deadline.check()

        counts = _first_preferences(ballots, active)
        active_ballots = sum(counts.values())
        round_number = len(rounds) + 1
        round_info = {
            "round": round_number,
            "counts": [{"option": key, "votes": counts[key]} for key in active],
            "active_ballots": active_ballots,
            "exhausted_ballots": len(ballots) - active_ballots,
            "eliminated": [],
        }
        rounds.append(round_info)

        log = [
            "Round {}: first-preference counts {}".format(
                round_number,
                ", ".join(f"{titles[key]} = {counts[key]}" for key in active),
            ),
            f"Active ballots this round: {active_ballots}.",
        ]

        if active_ballots == 0:
            log.append("No usable ballots remain; no winner can be determined.")
            round_logs.append(log)
            break

        if len(active) == 1:
            winner = active[0]
            log.append(f"{titles[winner]} is the only remaining option and wins.")
            round_logs.append(log)
            break

        leader = max(active, key=lambda key: counts[key])
        if counts[leader] * 2 > active_ballots:
            winner = leader
            log.append(f"{titles[leader]} has a majority of active ballots and wins.")
            round_logs.append(log)
            break

        min_votes = min(counts.values())
        lowest = [key for key in active if counts[key] == min_votes]

        if len(lowest) == len(active):
            unresolved_tie = list(active)
            log.append(
                f"All remaining options are tied at {min_votes}: {names(active)}. "
                "The tie cannot be broken by elimination."
            )
            round_logs.append(log)
            break

        if len(lowest) == 1:
            log.append(
                f"No majority. {titles[lowest[0]]} has the fewest first-preference "
                f"votes ({min_votes}) and is eliminated."
            )
        else:
            log.append(
                f"No majority. Tie for fewest votes ({min_votes}) between "
                f"{names(lowest)}; all are eliminated together."
            )

        round_info["eliminated"] = lowest
        active = [key for key in active if key not in lowest]
        round_logs.append(log)

    first_round = rounds[0] if rounds else None
    first_counts = {}
    if first_round:
        first_counts = {row["option"]: row["votes"] for row in first_round["counts"]}
    first_total = first_round["active_ballots"] if first_round else 0

    position = {key: index for index, key in enumerate(spec.option_keys)}
    option_results = [
        {
            "option": option.key,
            "title": option.title,
            "votes": first_counts.get(option.key, 0),
            "percentage": round(first_counts.get(option.key, 0) / first_total * 100, 2)
            if first_total > 0
            else 0.0,
        }
        for option in spec.options
    ]
    option_results.sort(key=lambda row: (-row["votes"], position[row["option"]]))

    return {
        "option_results": option_results,
        "leading_options": [winner] if winner else unresolved_tie,
        "winners": [winner] if winner else [],
        "is_tie": bool(unresolved_tie),
        "rounds": rounds,
        "round_logs": round_logs,
    }
