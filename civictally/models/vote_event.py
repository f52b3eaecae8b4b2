from civictally.extensions import db
from civictally.timeutil import utcnow

METHODS = ("simple_majority", "ranked_choice", "approval", "quadratic", "knapsack")

STATUSES = (
    "draft",
    "pending",
    "open",
    "closed",
    "counting",
    "completed",
    "cancelled",
)


class VoteEvent(db.Model):
    __tablename__ = "vote_events"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    method = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="draft")

    start_at = db.Column(db.DateTime, nullable=False)
    end_at = db.Column(db.DateTime, nullable=False)

    min_verification_level = db.Column(db.Integer, nullable=False, default=1)
    allowed_groups = db.Column(db.JSON, nullable=False, default=list)

    min_options = db.Column(db.Integer, nullable=False, default=1)
    max_options = db.Column(db.Integer, nullable=True)
    total_budget = db.Column(db.Integer, nullable=True)
    quorum = db.Column(db.Integer, nullable=True)
    majority_threshold_pct = db.Column(db.Float, nullable=True)
    eligible_voter_count = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    options = db.relationship(
        "Option", backref="event", lazy=True, order_by="Option.position"
    )
    ballots = db.relationship("Ballot", backref="event", lazy=True)
    result = db.relationship("TallyResult", backref="event", lazy=True, uselist=False)
