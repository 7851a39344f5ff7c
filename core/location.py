# core/location.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Location:
    """
    A point in the score: (system index, position inside the system).

    Ordered by system first, then position, so it works both as a sorted
    mapping key and as a playback cursor.
    """

    system: int = 0
    position: int = 0

    def __str__(self) -> str:
        return f"({self.system}, {self.position})"


SCORE_START = Location(0, 0)
