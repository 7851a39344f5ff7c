"""
core.score_check

Score consistency report for repeat structure.

This is a separate pass: the repeat index keeps absorbing malformed input
silently, and this module only describes what the index had to drop or
tolerate (unmatched bars, repeats sharing a start, stray or missing/extra
numbered endings).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Set

from core.location import SCORE_START, Location
from core.repeat_index import RepeatedSection
from core.score_models import ScoreDoc


class IssueKind(str, Enum):
    unmatched_repeat_end = "unmatched_repeat_end"
    unterminated_repeat_start = "unterminated_repeat_start"
    duplicate_repeat_start = "duplicate_repeat_start"
    orphan_alternate_ending = "orphan_alternate_ending"
    excess_alternate_endings = "excess_alternate_endings"
    missing_alternate_endings = "missing_alternate_endings"


@dataclass(frozen=True)
class ScoreIssue:
    kind: IssueKind
    location: Location
    message: str


def _ending_summary(section: RepeatedSection) -> str:
    return (
        f"repeat at {section.start} has alternate endings {section.alternate_ending_numbers} "
        f"for {section.total_repeat_count} plays"
    )


def _orphan(where: Location, why: str) -> ScoreIssue:
    return ScoreIssue(
        kind=IssueKind.orphan_alternate_ending,
        location=where,
        message=f"alternate ending at {where} {why}",
    )


def check_score(score: ScoreDoc) -> List[ScoreIssue]:
    """
    Walk the score the same way the repeat index does and report problems,
    ordered by location.
    """
    issues: List[ScoreIssue] = []
    score_start = RepeatedSection(SCORE_START)
    stack: List[RepeatedSection] = [score_start]
    indexed: Set[Location] = set()

    def close(section: RepeatedSection) -> None:
        if section.start in indexed:
            dropped = section.last_end_bar_location
            issues.append(ScoreIssue(
                kind=IssueKind.duplicate_repeat_start,
                location=dropped,
                message=(
                    f"repeat closed at {dropped} starts at {section.start}, "
                    f"which already belongs to another repeat; it is ignored"
                ),
            ))
            return
        indexed.add(section.start)

    for system_index, system in enumerate(score.systems):
        collected: Set[int] = set()

        for bar in system.barlines:
            location = Location(system_index, bar.position)

            if stack:
                active = stack[-1]
                if (
                    active.alternate_ending_count
                    and active.total_repeat_count
                    and active.alternate_ending_count >= active.total_repeat_count
                ):
                    if active.alternate_ending_count > active.total_repeat_count:
                        issues.append(ScoreIssue(
                            kind=IssueKind.excess_alternate_endings,
                            location=active.start,
                            message=_ending_summary(active),
                        ))
                    close(stack.pop())

            if bar.is_repeat_start:
                stack.append(RepeatedSection(location))
            elif bar.is_repeat_end:
                if not stack:
                    issues.append(ScoreIssue(
                        kind=IssueKind.unmatched_repeat_end,
                        location=location,
                        message=f"repeat end bar at {location} has no matching repeat start",
                    ))
                else:
                    active = stack[-1]
                    active.add_repeat_end_bar(location, bar.repeat_count)
                    if active.alternate_ending_count == 0:
                        close(stack.pop())

            next_bar = system.get_next_barline(bar.position)
            if next_bar is None:
                continue
            for ending in system.find_alternate_endings(bar.position, next_bar.position - 1):
                collected.add(ending.position)
                if stack:
                    stack[-1].add_alternate_ending(system_index, ending)
                else:
                    issues.append(_orphan(Location(system_index, ending.position), "is not inside a repeat"))

        # before the first barline, or at/after the last one
        for ending in system.alternate_endings:
            if ending.position not in collected:
                issues.append(_orphan(Location(system_index, ending.position), "lies outside every bar range"))

    for section in stack:
        if section.end_bar_locations:
            # endings still short of the play count when the score ends
            issues.append(ScoreIssue(
                kind=IssueKind.missing_alternate_endings,
                location=section.start,
                message=_ending_summary(section),
            ))
        elif section is score_start:
            # no repeat start bar here; its endings just have no repeat
            for where in sorted(set(section.alternate_endings.values())):
                issues.append(_orphan(where, "is not inside a repeat"))
        else:
            issues.append(ScoreIssue(
                kind=IssueKind.unterminated_repeat_start,
                location=section.start,
                message=f"repeat start bar at {section.start} is never closed",
            ))

    issues.sort(key=lambda i: i.location)
    return issues
