from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict

from core.location import Location
from core.repeat_index import RepeatedSection
from core.score_check import IssueKind, ScoreIssue


# =========================
# Base Model Config
# =========================
class _ContractBaseModel(BaseModel):
    """
    Response contracts:
    - forbid extra fields (Breaking Change)
    """
    model_config = ConfigDict(extra="forbid")


# =========================
# Schemas
# =========================
class LocationModel(_ContractBaseModel):
    system: int = Field(..., ge=0)
    position: int = Field(..., ge=0)

    @classmethod
    def from_location(cls, loc: Location) -> "LocationModel":
        return cls(system=loc.system, position=loc.position)


class SectionSummary(_ContractBaseModel):
    start: LocationModel
    last_end_bar: LocationModel
    end_bars: List[LocationModel] = Field(default_factory=list)
    repeat_counts: List[int] = Field(default_factory=list, description="Declared count per end bar")
    total_repeat_count: int = Field(..., ge=1)
    alternate_endings: Dict[int, LocationModel] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_shape(self) -> "SectionSummary":
        if len(self.end_bars) != len(self.repeat_counts):
            raise ValueError("end_bars and repeat_counts must have the same length")
        if not self.end_bars:
            raise ValueError("a finalized section has at least one end bar")
        return self

    @classmethod
    def from_section(cls, section: RepeatedSection) -> "SectionSummary":
        end_bars = section.end_bars
        return cls(
            start=LocationModel.from_location(section.start),
            last_end_bar=LocationModel.from_location(section.last_end_bar_location),
            end_bars=[LocationModel.from_location(loc) for loc in end_bars],
            repeat_counts=list(end_bars.values()),
            total_repeat_count=section.total_repeat_count,
            alternate_endings={
                num: LocationModel.from_location(loc) for num, loc in section.alternate_endings.items()
            },
        )


class RepeatIndexResponse(_ContractBaseModel):
    title: str = ""
    section_count: int = Field(..., ge=0)
    sections: List[SectionSummary] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_count(self) -> "RepeatIndexResponse":
        if self.section_count != len(self.sections):
            raise ValueError("section_count must match len(sections)")
        return self


class PlaybackResponse(_ContractBaseModel):
    step_count: int = Field(..., ge=0)
    locations: List[LocationModel] = Field(default_factory=list)


class ScoreIssueModel(_ContractBaseModel):
    kind: IssueKind
    location: LocationModel
    message: str = Field(..., min_length=1)

    @classmethod
    def from_issue(cls, issue: ScoreIssue) -> "ScoreIssueModel":
        return cls(
            kind=issue.kind,
            location=LocationModel.from_location(issue.location),
            message=issue.message,
        )


class ScoreCheckResponse(_ContractBaseModel):
    ok: bool
    issues: List[ScoreIssueModel] = Field(default_factory=list)
