"""Ballot shapes per voting method and their structural validation.

Every method gets its own frozen ballot type carrying only the fields that
method uses. ``validate_ballot`` turns raw submitted JSON into one of them;
``ballot_from_content`` rebuilds one from the stored normalized content.
"""

from dataclasses import dataclass

from civictally.services.errors import BallotValidationError, TallyError


@dataclass(frozen=True)
class OptionSpec:
    key: str
    title: str
    cost: int = None
    position: int = 0


@dataclass(frozen=True)
class EventSpec:
    """Everything the validator and the tally engine need from an event."""

    event_id: int
    method: str
    options: tuple
    min_options: int = 1
    max_options: int = None
    total_budget: int = None
    quorum: int = None
    majority_threshold_pct: float = 50.0
    eligible_voter_count: int = None

    @classmethod
    def from_model(cls, event):
        return cls(
            event_id=event.id,
            method=event.method,
            options=tuple(
                OptionSpec(
                    key=option.key,
                    title=option.title,
                    cost=option.cost,
                    position=option.position,
                )
                for option in sorted(event.options, key=lambda o: (o.position, o.id))
            ),
            min_options=event.min_options,
            max_options=event.max_options,
            total_budget=event.total_budget,
            quorum=event.quorum,
            majority_threshold_pct=event.majority_threshold_pct,
            eligible_voter_count=event.eligible_voter_count,
        )

    @property
    def option_keys(self):
        return [option.key for option in self.options]

    def option(self, key):
        for option in self.options:
            if option.key == key:
                return option
        return None


@dataclass(frozen=True)
class SelectionBallot:
    """simple_majority and approval: a set of selected option keys."""

    options: tuple

    def to_content(self):
        return {"options": list(self.options)}

    @property
    def referenced(self):
        return self.options


@dataclass(frozen=True)
class RankedBallot:
    """ranked_choice: option keys in preference order, rank 1 first."""

    ranking: tuple

    def to_content(self):
        return {"ranking": list(self.ranking)}

    @property
    def referenced(self):
        return self.ranking


@dataclass(frozen=True)
class WeightedBallot:
    """quadratic: (option key, weight) pairs with weight > 0."""

    weights: tuple

    def to_content(self):
        return {"weights": dict(self.weights)}

    @property
    def referenced(self):
        return tuple(key for key, _ in self.weights)

    @property
    def credits_spent(self):
        return sum(weight * weight for _, weight in self.weights)


@dataclass(frozen=True)
class AllocationBallot:
    """knapsack: (option key, amount) pairs, each amount the option's full cost."""

    allocations: tuple

    def to_content(self):
        return {"allocations": dict(self.allocations)}

    @property
    def referenced(self):
        return tuple(key for key, _ in self.allocations)

    @property
    def total(self):
        return sum(amount for _, amount in self.allocations)


BALLOT_TYPES = {
    "simple_majority": SelectionBallot,
    "approval": SelectionBallot,
    "ranked_choice": RankedBallot,
    "quadratic": WeightedBallot,
    "knapsack": AllocationBallot,
}


def _malformed(message):
    return BallotValidationError(BallotValidationError.MALFORMED_BALLOT, message)


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _ordered(spec, keys):
    order = {key: index for index, key in enumerate(spec.option_keys)}
    return tuple(sorted(keys, key=lambda key: order[key]))


def _check_known(spec, keys):
    known = set(spec.option_keys)
    for key in keys:
        if not isinstance(key, str):
            raise _malformed("Option identifiers must be strings.")
        if key not in known:
            raise BallotValidationError(
                BallotValidationError.UNKNOWN_OPTION,
                f"Option '{key}' is not part of this vote.",
            )


def _check_count(spec, count):
    max_options = spec.max_options if spec.max_options is not None else len(spec.options)
    if count < spec.min_options or count > max_options:
        raise BallotValidationError(
            BallotValidationError.OPTION_COUNT_OUT_OF_RANGE,
            f"Select between {spec.min_options} and {max_options} options "
            f"(got {count}).",
        )


def _unwrap(raw, field, expected_types):
    # A bare option->amount mapping may itself use the wrapper name as a key.
    if isinstance(raw, dict) and isinstance(raw.get(field), expected_types):
        raw = raw[field]
    if not isinstance(raw, expected_types):
        raise _malformed(f"Expected '{field}' in the ballot.")
    return raw


def _validate_selection(spec, raw):
    if isinstance(raw, str):
        raw = [raw]
    selected = _unwrap(raw, "options", (list, tuple))
    _check_known(spec, selected)
    if len(set(selected)) != len(selected):
        raise _malformed("An option was selected more than once.")
    _check_count(spec, len(selected))
    return SelectionBallot(options=_ordered(spec, selected))


def _validate_ranking(spec, raw):
    if isinstance(raw, dict) and "ranks" in raw:
        ranks = raw["ranks"]
        if not isinstance(ranks, dict):
            raise _malformed("Expected 'ranks' to map rank to option.")
        by_rank = {}
        for rank, key in ranks.items():
            try:
                rank_number = int(rank)
            except (TypeError, ValueError):
                raise BallotValidationError(
                    BallotValidationError.INVALID_RANKING, f"Rank '{rank}' is not a number."
                ) from None
            if rank_number in by_rank:
                raise BallotValidationError(
                    BallotValidationError.INVALID_RANKING, f"Rank {rank_number} is repeated."
                )
            by_rank[rank_number] = key
        if sorted(by_rank) != list(range(1, len(by_rank) + 1)):
            raise BallotValidationError(
                BallotValidationError.INVALID_RANKING,
                "Ranks must run 1, 2, 3, ... without gaps.",
            )
        ranking = [by_rank[rank] for rank in sorted(by_rank)]
    else:
        ranking = list(_unwrap(raw, "ranking", (list, tuple)))

    _check_known(spec, ranking)
    if len(set(ranking)) != len(ranking):
        raise BallotValidationError(
            BallotValidationError.INVALID_RANKING, "An option is ranked more than once."
        )
    _check_count(spec, len(ranking))
    return RankedBallot(ranking=tuple(ranking))


def _validate_weights(spec, raw):
    weights = _unwrap(raw, "weights", dict)
    _check_known(spec, weights)
    for key, weight in weights.items():
        if not _is_int(weight) or weight < 0:
            raise BallotValidationError(
                BallotValidationError.INVALID_WEIGHT,
                f"Weight for '{key}' must be a non-negative whole number.",
            )

    nonzero = {key: weight for key, weight in weights.items() if weight > 0}
    _check_count(spec, len(nonzero))
    ballot = WeightedBallot(
        weights=tuple((key, nonzero[key]) for key in _ordered(spec, nonzero))
    )
    if ballot.credits_spent > spec.total_budget:
        raise BallotValidationError(
            BallotValidationError.CREDIT_BUDGET_EXCEEDED,
            f"Ballot spends {ballot.credits_spent} voice credits; "
            f"the budget is {spec.total_budget}.",
        )
    return ballot


def _validate_allocations(spec, raw):
    if (
        isinstance(raw, dict)
        and isinstance(raw.get("options"), (list, tuple))
        and not isinstance(raw.get("allocations"), dict)
    ):
        raw = raw["options"]
    if isinstance(raw, (list, tuple)):
        _check_known(spec, raw)
        if len(set(raw)) != len(raw):
            raise _malformed("An option was selected more than once.")
        raw = {key: spec.option(key).cost for key in raw}

    allocations = _unwrap(raw, "allocations", dict)
    _check_known(spec, allocations)
    for key, amount in allocations.items():
        if not _is_int(amount) or amount != spec.option(key).cost:
            raise BallotValidationError(
                BallotValidationError.INVALID_ALLOCATION,
                f"'{key}' can only be funded in full ({spec.option(key).cost}).",
            )
    _check_count(spec, len(allocations))

    ballot = AllocationBallot(
        allocations=tuple((key, allocations[key]) for key in _ordered(spec, allocations))
    )
    if ballot.total > spec.total_budget:
        raise BallotValidationError(
            BallotValidationError.BUDGET_EXCEEDED,
            f"Selected items cost {ballot.total}; the budget is {spec.total_budget}.",
        )
    return ballot


VALIDATORS = {
    "simple_majority": _validate_selection,
    "approval": _validate_selection,
    "ranked_choice": _validate_ranking,
    "quadratic": _validate_weights,
    "knapsack": _validate_allocations,
}


def validate_ballot(spec, raw):
    """Return the normalized ballot for ``raw`` or raise BallotValidationError.

    Pure function of the event configuration and this one ballot.
    """
    if raw is None:
        raise _malformed("Ballot is empty.")
    return VALIDATORS[spec.method](spec, raw)


def ballot_from_content(spec, content):
    """Rebuild a stored ballot, re-checking it against the event's options.

    A stored ballot that no longer validates means the ballot log and the
    event disagree, which makes the tally unsafe.
    """
    try:
        return validate_ballot(spec, content)
    except BallotValidationError as exc:
        raise TallyError(
            TallyError.INCONSISTENT_BALLOT_DATA,
            f"Stored ballot no longer matches event {spec.event_id}: {exc.message}",
        ) from exc
