from flask import request

from civictally.services import audit, lifecycle


def _actor():
    return request.headers.get("X-Actor-Id") or None


def _json_body():
    return request.get_json(silent=True) or {}


def register_event_routes(app):
    @app.route("/api/events", methods=["POST"])
    def create_event():
        event = lifecycle.create_vote_event(_json_body(), created_by=_actor())
        return {"ok": True, "event": lifecycle.event_view(event.id)}, 201

    @app.route("/api/events/<int:event_id>")
    def get_event(event_id):
        return {"ok": True, "event": lifecycle.event_view(event_id)}

    @app.route("/api/events/<int:event_id>/options", methods=["POST"])
    def add_event_option(event_id):
        option = lifecycle.add_option(event_id, _json_body())
        return {"ok": True, "option": {"key": option.key, "title": option.title}}, 201

    @app.route("/api/events/<int:event_id>/publish", methods=["POST"])
    def publish_event(event_id):
        event = lifecycle.publish_vote_event(event_id, actor=_actor())
        return {"ok": True, "status": event.status}

    @app.route("/api/events/<int:event_id>/open", methods=["POST"])
    def open_event(event_id):
        event = lifecycle.open_vote_event(event_id, actor=_actor())
        return {"ok": True, "status": event.status}

    @app.route("/api/events/<int:event_id>/close", methods=["POST"])
    def close_event(event_id):
        event = lifecycle.close_vote_event(event_id, actor=_actor())
        return {"ok": True, "status": event.status}

    @app.route("/api/events/<int:event_id>/cancel", methods=["POST"])
    def cancel_event(event_id):
        reason = _json_body().get("reason")
        event = lifecycle.cancel_vote_event(event_id, actor=_actor(), reason=reason)
        return {"ok": True, "status": event.status}

    @app.route("/api/events/<int:event_id>/tally", methods=["POST"])
    def close_and_tally(event_id):
        result = lifecycle.close_and_tally(event_id, actor=_actor())
        return {"ok": True, "result": lifecycle.result_view(result)}

    @app.route("/api/events/<int:event_id>/result")
    def get_result(event_id):
        result = lifecycle.get_result(event_id)
        return {"ok": True, "result": lifecycle.result_view(result)}

    @app.route("/api/events/<int:event_id>/audit")
    def audit_export(event_id):
        event = lifecycle.get_result(event_id).event
        return {"ok": True, "export": audit.build_audit_export(event)}
