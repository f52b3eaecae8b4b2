from blinker import Namespace
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()

signals = Namespace()

# Sent once per event, by the run that persists the result.
tally_completed = signals.signal("tally-completed")
