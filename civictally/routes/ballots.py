from flask import request

from civictally.services import ballots
from civictally.services.eligibility import Voter


def register_ballot_routes(app):
    @app.route("/api/events/<int:event_id>/ballots", methods=["POST"])
    def submit_ballot(event_id):
        data = request.get_json(silent=True) or {}
        voter_id = str(data.get("voter_id") or "").strip()
        if not voter_id:
            return {"ok": False, "error": "MalformedBallot", "message": "voter_id is required."}, 400

        try:
            voter = Voter(
                voter_id=voter_id,
                verification_level=data.get("verification_level", 0),
                groups=frozenset(data.get("groups") or ()),
            )
        except (TypeError, ValueError) as exc:
            return {"ok": False, "error": "MalformedBallot", "message": str(exc)}, 400

        receipt = ballots.submit_ballot(event_id, voter, data.get("ballot"))
        return {
            "ok": True,
            "receipt_hash": receipt.receipt_hash,
            "replaced": receipt.replaced_receipt_hash is not None,
        }, 201

    @app.route("/api/events/<int:event_id>/receipts/verify", methods=["POST"])
    def verify_receipt(event_id):
        data = request.get_json(silent=True) or {}
        valid = ballots.verify_receipt(
            event_id,
            str(data.get("voter_id") or ""),
            str(data.get("receipt_hash") or "").strip().lower(),
        )
        return {"ok": True, "valid": valid}
