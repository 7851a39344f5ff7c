"""
core.playback

Playback-side use of the repeat index: per-session repeat counters and a
walker that follows repeats/alternate endings through a score.

The walker works on "stops" (every barline and alternate-ending position);
it does not schedule notes or deal with time.
"""

from __future__ import annotations

import bisect
import logging
from typing import Dict, Iterator, List, Optional

from core.config import get_settings
from core.location import Location
from core.repeat_index import RepeatedSection, RepeatIndex, RepeatState
from core.score_models import ScoreDoc

logger = logging.getLogger(__name__)


class PlaybackLimitExceeded(RuntimeError):
    """Raised when a walk visits more locations than allowed (looping structure)."""

    def __init__(self, max_steps: int, location: Location):
        super().__init__(f"playback exceeded {max_steps} steps (last location {location})")
        self.max_steps = max_steps
        self.location = location


class PlaybackSession:
    """
    One logical playback pass over a shared RepeatIndex.

    Each session owns its own RepeatState per section, so several sessions can
    walk the same index without touching each other's counters (or the
    sections' built-in state).
    """

    def __init__(self, index: RepeatIndex):
        self._index = index
        self._states: Dict[Location, RepeatState] = {}

    def state_for(self, section: RepeatedSection) -> RepeatState:
        state = self._states.get(section.start)
        if state is None:
            state = section.new_state()
            self._states[section.start] = state
        return state

    def resolve(self, location: Location) -> Location:
        """Where playback continues after visiting location."""
        section = self._index.find(location)
        if section is None:
            return location
        return section.perform_repeat(location, self.state_for(section))

    def reset(self) -> None:
        self._states.clear()


def score_stops(score: ScoreDoc) -> List[Location]:
    """All barline and alternate-ending locations of the score, in order."""
    stops: List[Location] = []
    for system_index, system in enumerate(score.systems):
        positions = {b.position for b in system.barlines}
        positions.update(e.position for e in system.alternate_endings)
        stops.extend(Location(system_index, p) for p in sorted(positions))
    return stops


def iter_playback(
    score: ScoreDoc,
    index: Optional[RepeatIndex] = None,
    *,
    session: Optional[PlaybackSession] = None,
    max_steps: Optional[int] = None,
) -> Iterator[Location]:
    """
    Yield the stops of the score in playback order, following repeats.

    A jump target is itself visited (and resolved) before moving on.
    """
    if session is None:
        session = PlaybackSession(index if index is not None else RepeatIndex(score))
    if max_steps is None:
        max_steps = get_settings().max_playback_steps

    stops = score_stops(score)
    i = 0
    steps = 0
    while i < len(stops):
        location = stops[i]
        steps += 1
        if steps > max_steps:
            raise PlaybackLimitExceeded(max_steps, location)
        yield location

        target = session.resolve(location)
        if target == location:
            i += 1
            continue

        logger.debug("jump %s -> %s", location, target)
        i = bisect.bisect_left(stops, target)


def unroll(
    score: ScoreDoc,
    index: Optional[RepeatIndex] = None,
    *,
    max_steps: Optional[int] = None,
) -> List[Location]:
    """Full playback order as a list (see iter_playback)."""
    return list(iter_playback(score, index, max_steps=max_steps))
