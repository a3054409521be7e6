"""Exponential reconnect delay."""


class Backoff:
    """
    Doubling delay with a floor and a cap, in seconds.

    ``next_delay()`` returns the delay to wait now and advances the schedule:
    1, 2, 4, 8, 15, 15, ... with the defaults. ``reset()`` returns to the floor.
    """

    FLOOR = 1.0
    CAP = 15.0
    FACTOR = 2.0

    def __init__(self, floor: float = FLOOR, cap: float = CAP, factor: float = FACTOR):
        self.floor = floor
        self.cap = cap
        self.factor = factor
        self._current = floor

    @property
    def current(self) -> float:
        return self._current

    def next_delay(self) -> float:
        delay = self._current
        self._current = min(self._current * self.factor, self.cap)
        return delay

    def reset(self) -> None:
        self._current = self.floor
