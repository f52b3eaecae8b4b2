import time

from civictally.services.errors import TallyError


class Deadline:
    def __init__(self, seconds=None):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds if seconds else None

    def check(self):
        if self.expires_at is not None and time.monotonic() > self.expires_at:
            raise TallyError(
                TallyError.TIMED_OUT,
                f"Tally did not finish within {self.seconds} seconds.",
            )
