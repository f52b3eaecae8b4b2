from civictally.extensions import db
from civictally.timeutil import utcnow


class AuditLogEntry(db.Model):
    __tablename__ = "audit_log_entries"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("vote_events.id"), nullable=False)
    event_type = db.Column(db.String(50), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
