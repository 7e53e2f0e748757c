"""
Simulation clock for Wand Protocol.

Block timestamps are injected through this clock so that interest accrual and the
circuit breaker can be driven deterministically.
"""

import time


class SimClock:
    """Monotonic timestamp source in whole seconds."""

    def __init__(self, start_time=None):
        self.current_time = int(time.time()) if start_time is None else int(start_time)

    def now(self):
        return self.current_time

    def update_time(self, seconds):
        """Advances the clock by the given number of seconds."""
        if seconds < 0:
            raise ValueError("Time cannot go backwards")
        self.current_time += int(seconds)
        return self.current_time

    def increase_to(self, timestamp):
        """Moves the clock to an absolute timestamp."""
        if timestamp < self.current_time:
            raise ValueError("Time cannot go backwards")
        self.current_time = int(timestamp)
        return self.current_time
