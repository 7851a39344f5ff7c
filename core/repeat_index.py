"""
core.repeat_index

Index of the repeated sections of a score.

A single left-to-right pass over the systems/barlines matches repeat-start
and repeat-end bars (they nest like brackets) and attaches alternate endings
to the innermost open section. During playback the host asks the index which
section encloses the current location and lets that section decide where to
go next (jump back to its start, branch to a numbered ending, or continue).

Malformed input (unmatched bars, extra endings) is absorbed silently here;
see core.score_check for the separate consistency report.
"""

from __future__ import annotations

import bisect
import logging
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from core.location import SCORE_START, Location
from core.score_models import AlternateEnding, ScoreDoc

logger = logging.getLogger(__name__)


class RepeatState:
    """
    Mutable playback counters for one repeated section.

    remaining[loc]  -> how many more times the end bar at loc jumps back
    active_repeat   -> 1-based pass number through the section
    """

    def __init__(self, end_bars: Mapping[Location, int]):
        self.active_repeat = 1
        self.remaining: Dict[Location, int] = {}
        self.reset(end_bars)

    def reset(self, end_bars: Mapping[Location, int]) -> None:
        self.active_repeat = 1
        self.remaining = {loc: count - 1 for loc, count in end_bars.items()}

    def __repr__(self) -> str:
        return f"RepeatState(active_repeat={self.active_repeat}, remaining={self.remaining})"


class RepeatedSection:
    """
    One repeat construct: start bar, end bars with their declared counts,
    and the repeat number -> alternate ending branch targets.

    The structure is fixed once the index is built. The section also owns a
    built-in RepeatState so a single playback pass can call perform_repeat()
    directly; independent sessions pass their own state (see new_state()).
    """

    def __init__(self, start: Location):
        self._start = start
        self._end_bars: Dict[Location, int] = {}
        self._alternate_endings: Dict[int, Location] = {}
        self._state = RepeatState(self._end_bars)

    def __repr__(self) -> str:
        return (
            f"RepeatedSection(start={self._start}, end_bars={self.end_bars}, "
            f"alternate_endings={self.alternate_endings})"
        )

    # ---- structure ----
    def add_repeat_end_bar(self, location: Location, count: int) -> None:
        # caller guarantees count >= 1
        self._end_bars[location] = count
        self._state.remaining[location] = count - 1

    def add_alternate_ending(self, system: int, ending: AlternateEnding) -> None:
        location = Location(system, ending.position)
        # last write wins for a repeated number
        for num in ending.numbers:
            self._alternate_endings[num] = location

    @property
    def start(self) -> Location:
        return self._start

    @property
    def end_bars(self) -> Dict[Location, int]:
        return {loc: self._end_bars[loc] for loc in sorted(self._end_bars)}

    @property
    def end_bar_locations(self) -> List[Location]:
        return sorted(self._end_bars)

    @property
    def alternate_endings(self) -> Dict[int, Location]:
        return {num: self._alternate_endings[num] for num in sorted(self._alternate_endings)}

    @property
    def alternate_ending_numbers(self) -> List[int]:
        return sorted(self._alternate_endings)

    @property
    def last_end_bar_location(self) -> Location:
        if not self._end_bars:
            raise AssertionError(f"repeated section at {self._start} has no end bar")
        return max(self._end_bars)

    @property
    def alternate_ending_count(self) -> int:
        return len(self._alternate_endings)

    @property
    def total_repeat_count(self) -> int:
        return sum(self._end_bars.values())

    def find_alternate_ending(self, number: int) -> Optional[Location]:
        return self._alternate_endings.get(number)

    def contains(self, location: Location) -> bool:
        return bool(self._end_bars) and self._start <= location <= self.last_end_bar_location

    # ---- playback state ----
    @property
    def active_repeat(self) -> int:
        return self._state.active_repeat

    @property
    def remaining(self) -> Dict[Location, int]:
        return dict(self._state.remaining)

    def new_state(self) -> RepeatState:
        """Fresh counters for an independent playback session."""
        return RepeatState(self._end_bars)

    def reset(self, state: Optional[RepeatState] = None) -> None:
        (state or self._state).reset(self._end_bars)

    def perform_repeat(self, location: Location, state: Optional[RepeatState] = None) -> Location:
        """
        Transition function, called once per visited location during playback.
        Returns the location playback continues from (may be `location` itself).
        """
        if state is None:
            state = self._state

        # At the first alternate ending, branch to the ending for the active pass.
        first_ending = self.find_alternate_ending(1)
        if first_ending is not None and first_ending == location:
            target = self.find_alternate_ending(state.active_repeat)
            if target is not None:
                return target

        remaining = state.remaining.get(location)
        if remaining is None:
            return location

        if remaining > 0:
            state.remaining[location] = remaining - 1
            state.active_repeat += 1
            return self._start

        # Exhausted: rearm so an enclosing repeat can play this one again.
        state.remaining[location] = self._end_bars[location] - 1
        return location


class RepeatIndex:
    """
    Ordered collection of the finalized repeated sections of a score snapshot.

    Build once per score structure; rebuild after any structural edit.
    """

    def __init__(self, score: ScoreDoc):
        self._by_start: Dict[Location, RepeatedSection] = {}
        self._build(score)

        self._starts: List[Location] = sorted(self._by_start)
        self._sections: Tuple[RepeatedSection, ...] = tuple(self._by_start[s] for s in self._starts)

    def _finalize(self, section: RepeatedSection) -> None:
        if section.start in self._by_start:
            logger.debug("dropping repeated section at %s: start already indexed", section.start)
            return
        self._by_start[section.start] = section

    def _build(self, score: ScoreDoc) -> None:
        # The start of the score acts as an implicit repeat start bar.
        stack: List[RepeatedSection] = [RepeatedSection(SCORE_START)]

        for system_index, system in enumerate(score.systems):
            for bar in system.barlines:
                location = Location(system_index, bar.position)

                # All endings of the open section seen -> it is complete.
                if stack:
                    active = stack[-1]
                    if (
                        active.alternate_ending_count
                        and active.total_repeat_count
                        and active.alternate_ending_count >= active.total_repeat_count
                    ):
                        self._finalize(stack.pop())

                if bar.is_repeat_start:
                    stack.append(RepeatedSection(location))
                elif bar.is_repeat_end:
                    if stack:
                        active = stack[-1]
                        active.add_repeat_end_bar(location, bar.repeat_count)
                        # Without numbered endings the end bar closes the section.
                        if active.alternate_ending_count == 0:
                            self._finalize(stack.pop())
                    else:
                        logger.debug("ignoring unmatched repeat end bar at %s", location)

                next_bar = system.get_next_barline(bar.position)
                if next_bar is None:
                    continue

                for ending in system.find_alternate_endings(bar.position, next_bar.position - 1):
                    if stack:
                        stack[-1].add_alternate_ending(system_index, ending)
                    else:
                        logger.debug("ignoring alternate ending outside any repeat at %s",
                                     Location(system_index, ending.position))

        for section in stack:
            if section.start == SCORE_START and not section.end_bar_locations:
                continue
            logger.debug("dropping unterminated repeated section at %s", section.start)

        logger.debug("indexed %d repeated section(s)", len(self._by_start))

    # ---- queries ----
    @property
    def sections(self) -> Tuple[RepeatedSection, ...]:
        return self._sections

    def __iter__(self) -> Iterator[RepeatedSection]:
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __bool__(self) -> bool:
        return bool(self._sections)

    def find(self, location: Location) -> Optional[RepeatedSection]:
        """
        Innermost section with start <= location <= last end bar, or None.

        Nested sections start later than the section enclosing them, so the
        first match scanning backwards from location is the innermost one.
        """
        i = bisect.bisect_right(self._starts, location)
        while i > 0:
            i -= 1
            section = self._sections[i]
            if section.contains(location):
                return section
        return None

    def reset(self) -> None:
        """Reset the built-in counters of every section (start of a new playback)."""
        for section in self._sections:
            section.reset()
