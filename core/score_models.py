from __future__ import annotations

import bisect
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class BarType(str, Enum):
    single = "single"
    double = "double"
    free_time = "free_time"
    repeat_start = "repeat_start"
    repeat_end = "repeat_end"
    double_bar_fine = "double_bar_fine"


class Barline(BaseModel):
    """
    A barline inside one system.
    repeat_count is the total number of plays and only matters for repeat_end bars.
    """
    position: int = Field(..., ge=0, description="Position inside the system")
    bar_type: BarType = Field(BarType.single, description="Barline kind")
    repeat_count: int = Field(2, ge=1, description="Total plays of the repeated section")

    @property
    def is_repeat_start(self) -> bool:
        return self.bar_type == BarType.repeat_start

    @property
    def is_repeat_end(self) -> bool:
        return self.bar_type == BarType.repeat_end


class AlternateEnding(BaseModel):
    """
    A numbered ending (1st/2nd time bar), active during the listed repeat numbers.
    """
    position: int = Field(..., ge=0, description="Position inside the system")
    numbers: List[int] = Field(..., min_length=1, description="1-based repeat numbers")

    @field_validator("numbers")
    @classmethod
    def _normalize_numbers(cls, v: List[int]) -> List[int]:
        if any(n < 1 for n in v):
            raise ValueError("alternate ending numbers must be >= 1")
        return sorted(set(v))


def _position(item) -> int:
    return item.position


class System(BaseModel):
    barlines: List[Barline] = Field(default_factory=list)
    alternate_endings: List[AlternateEnding] = Field(default_factory=list)

    @model_validator(mode="after")
    def _sort_by_position(self) -> "System":
        self.barlines.sort(key=_position)
        self.alternate_endings.sort(key=_position)

        positions = [b.position for b in self.barlines]
        if len(positions) != len(set(positions)):
            raise ValueError("a system cannot hold two barlines at the same position")
        return self

    def get_next_barline(self, position: int) -> Optional[Barline]:
        """First barline strictly after position, or None."""
        i = bisect.bisect_right(self.barlines, position, key=_position)
        return self.barlines[i] if i < len(self.barlines) else None

    def find_alternate_endings(self, left: int, right: int) -> List[AlternateEnding]:
        """Endings with left <= position <= right (inclusive on both ends)."""
        lo = bisect.bisect_left(self.alternate_endings, left, key=_position)
        hi = bisect.bisect_right(self.alternate_endings, right, key=_position)
        return self.alternate_endings[lo:hi]


class ScoreDoc(BaseModel):
    """
    Structural snapshot of a score: systems, their barlines and alternate endings.
    Read-only input for the repeat index.
    """
    version: int = Field(1, description="Schema version")
    title: str = Field("", description="Optional score title")
    systems: List[System] = Field(default_factory=list)
