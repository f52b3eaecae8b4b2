from civictally.extensions import db
from civictally.routes.ballots import register_ballot_routes
from civictally.routes.events import register_event_routes
from civictally.services.errors import VotingError


def register_routes(app):
    @app.errorhandler(VotingError)
    def voting_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error("%s: %s", error.code, error.message)
        return error.to_dict(), error.status_code

    register_event_routes(app)
    register_ballot_routes(app)
