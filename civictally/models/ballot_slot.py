from civictally.extensions import db


class BallotSlot(db.Model):
    """The single counted-ballot pointer for an (event, voter) pair.

    ``version`` is bumped on every swap; writers compare-and-swap on it.
    """

    __tablename__ = "ballot_slots"

    event_id = db.Column(db.Integer, db.ForeignKey("vote_events.id"), primary_key=True)
    voter_id = db.Column(db.String(64), primary_key=True)
    ballot_id = db.Column(db.Integer, db.ForeignKey("ballots.id"), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
