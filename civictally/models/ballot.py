from civictally.extensions import db
from civictally.timeutil import utcnow


class Ballot(db.Model):
    """One row of the per-event append-only ballot log.

    Rows are never updated. Which ballot counts for a voter is held by
    their BallotSlot.
    """

    __tablename__ = "ballots"
    __table_args__ = (db.Index("ix_ballots_event_voter", "event_id", "voter_id"),)

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("vote_events.id"), nullable=False)
    voter_id = db.Column(db.String(64), nullable=False)
    content = db.Column(db.JSON, nullable=False)
    receipt_hash = db.Column(db.String(64), nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
