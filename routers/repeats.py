from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query

from core.location import Location
from core.models import (
    LocationModel,
    PlaybackResponse,
    RepeatIndexResponse,
    ScoreCheckResponse,
    ScoreIssueModel,
    SectionSummary,
)
from core.playback import unroll
from core.repeat_index import RepeatIndex
from core.score_check import check_score
from core.score_models import ScoreDoc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/repeats", tags=["Repeats"])


@router.post("/index", response_model=RepeatIndexResponse)
def build_index(score: ScoreDoc = Body(...)) -> RepeatIndexResponse:
    """
    Build the repeat index of a score snapshot and list its sections in start order.
    """
    index = RepeatIndex(score)
    sections = [SectionSummary.from_section(s) for s in index]
    return RepeatIndexResponse(title=score.title, section_count=len(sections), sections=sections)


@router.post("/find", response_model=SectionSummary)
def find_section(
    score: ScoreDoc = Body(...),
    system: int = Query(..., ge=0),
    position: int = Query(..., ge=0),
) -> SectionSummary:
    """
    Innermost repeated section enclosing (system, position).
    """
    loc = Location(system, position)
    section = RepeatIndex(score).find(loc)
    if section is None:
        logger.debug("find: no repeated section at %s", loc)
        raise HTTPException(status_code=404, detail="No repeated section at this location")
    return SectionSummary.from_section(section)


@router.post("/playback", response_model=PlaybackResponse)
def playback_order(
    score: ScoreDoc = Body(...),
    max_steps: Optional[int] = Query(None, ge=1),
) -> PlaybackResponse:
    """
    Locations of the score in playback order, following repeats and endings.
    A walk longer than max_steps (default: settings) is answered with 422.
    """
    locations = unroll(score, max_steps=max_steps)
    return PlaybackResponse(
        step_count=len(locations),
        locations=[LocationModel.from_location(loc) for loc in locations],
    )


@router.post("/check", response_model=ScoreCheckResponse)
def check_repeats(score: ScoreDoc = Body(...)) -> ScoreCheckResponse:
    """
    Report repeat-structure problems (the index itself tolerates them).
    """
    issues = [ScoreIssueModel.from_issue(i) for i in check_score(score)]
    return ScoreCheckResponse(ok=not issues, issues=issues)
