from civictally.extensions import db

OPTION_TYPES = ("proposal", "budget_item", "candidate", "text_option")


class Option(db.Model):
    __tablename__ = "options"
    __table_args__ = (db.UniqueConstraint("event_id", "key", name="uq_options_event_key"),)

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("vote_events.id"), nullable=False)
    key = db.Column(db.String(64), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="text_option")
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    cost = db.Column(db.Integer, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
