from civictally.extensions import db


class TallyResult(db.Model):
    __tablename__ = "tally_results"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("vote_events.id"), nullable=False, unique=True
    )
    payload = db.Column(db.JSON, nullable=False)
    audit_hash = db.Column(db.String(64), nullable=False)
    ballot_count = db.Column(db.Integer, nullable=False)
    quorum_met = db.Column(db.Boolean, nullable=False)
    count_method = db.Column(db.String(100), nullable=False)
    counted_by = db.Column(db.String(64), nullable=True)
    counted_at = db.Column(db.DateTime, nullable=False)
