def tally_quadratic(spec, ballots, deadline):
    scores = {key: 0 for key in spec.option_keys}
    supporters = {key: 0 for key in spec.option_keys}
    credits_spent = 0

    for ballot in ballots:
        deadline.check()
        # Squares only bound the voter's spend; the option scores the raw weight.
        for key, weight in ballot.weights:
            scores[key] += weight
            supporters[key] += 1
        credits_spent += ballot.credits_spent

    total_score = sum(scores.values())
    position = {key: index for index, key in enumerate(spec.option_keys)}

    option_results = []
    for option in spec.options:
        score = scores[option.key]
        option_results.append(
            {
                "option": option.key,
                "title": option.title,
                "votes": score,
                "supporters": supporters[option.key],
                "percentage": round(score / total_score * 100, 2) if total_score > 0 else 0.0,
            }
        )
    option_results.sort(key=lambda row: (-row["votes"], position[row["option"]]))

    top_score = option_results[0]["votes"] if option_results else 0
    leading = []
    if top_score > 0:
        leading = [row["option"] for row in option_results if row["votes"] == top_score]

    return {
        "option_results": option_results,
        "leading_options": leading,
        "winners": leading if len(leading) == 1 else [],
        "is_tie": len(leading) > 1,
        "credit_budget": spec.total_budget,
        "credits_spent": credits_spent,
    }
