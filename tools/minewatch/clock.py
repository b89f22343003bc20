"""Poll-interval sleeping, injectable so tests never wait on the wall clock."""

from __future__ import annotations

import time


class Ticker:
    """Blocks the caller for one poll interval."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)
