from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from core.config import get_settings
from core.score_models import AlternateEnding, Barline, BarType, ScoreDoc, System

logger = logging.getLogger(__name__)

MUSICXML_SUFFIXES = (".musicxml", ".xml", ".mxl")
JSON_SUFFIXES = (".json",)


def _plain_bar_type(bl) -> BarType:
    kind = str(getattr(bl, "type", "") or "").lower()
    if kind == "double":
        return BarType.double
    if kind in ("final", "light-heavy"):
        return BarType.double_bar_fine
    return BarType.single


def _repeat_direction(bl) -> Optional[str]:
    from music21 import bar  # type: ignore

    if isinstance(bl, bar.Repeat):
        return str(bl.direction)
    return None


def _group_systems(measures: list, measures_per_system: int) -> List[list]:
    """
    Split measures into systems: explicit system breaks (SystemLayout isNew)
    always start a new system; measures_per_system > 0 adds a fixed wrap.
    """
    from music21 import layout  # type: ignore

    systems: List[list] = []
    for m in measures:
        new_system = not systems
        if not new_system:
            breaks = m.getElementsByClass(layout.SystemLayout)
            if any(getattr(sl, "isNew", False) for sl in breaks):
                new_system = True
            elif measures_per_system > 0 and len(systems[-1]) >= measures_per_system:
                new_system = True
        if new_system:
            systems.append([m])
        else:
            systems[-1].append(m)
    return systems


def music21_to_score(
    source,
    *,
    measures_per_system: Optional[int] = None,
    default_repeat_count: Optional[int] = None,
    title: Optional[str] = None,
) -> ScoreDoc:
    """
    music21 Score/Part -> ScoreDoc (structure only, first part).

    Measure boundary j of a system becomes a barline at position 2*j. When one
    boundary closes a repeat and opens another, the repeat end stays at 2*j and
    the repeat start moves to 2*j + 1. An alternate ending (RepeatBracket) sits
    at 2*j + 1 of its first measure, i.e. just after that measure's left barline.
    """
    from music21 import spanner, stream  # type: ignore

    s = get_settings()
    mps = s.measures_per_system if measures_per_system is None else int(measures_per_system)
    repeat_default = s.default_repeat_count if default_repeat_count is None else int(default_repeat_count)

    parts = list(getattr(source, "parts", [])) or [source]
    part = parts[0]
    measures = list(part.getElementsByClass(stream.Measure))

    grouped = _group_systems(measures, mps)

    # measure id -> (system index, index inside system)
    slots: Dict[int, Tuple[int, int]] = {}
    for sys_idx, ms in enumerate(grouped):
        for j, m in enumerate(ms):
            slots[id(m)] = (sys_idx, j)

    systems: List[System] = []
    for ms in grouped:
        barlines: List[Barline] = []
        for j in range(len(ms) + 1):
            right_of_prev = ms[j - 1].rightBarline if j > 0 else None
            left_of_next = ms[j].leftBarline if j < len(ms) else None

            is_end = _repeat_direction(right_of_prev) == "end"
            is_start = _repeat_direction(left_of_next) == "start"
            pos = 2 * j

            count = repeat_default
            if is_end and getattr(right_of_prev, "times", None) is not None:
                count = max(1, int(right_of_prev.times))

            if is_end and is_start:
                barlines.append(Barline(position=pos, bar_type=BarType.repeat_end, repeat_count=count))
                barlines.append(Barline(position=pos + 1, bar_type=BarType.repeat_start))
            elif is_end:
                barlines.append(Barline(position=pos, bar_type=BarType.repeat_end, repeat_count=count))
            elif is_start:
                barlines.append(Barline(position=pos, bar_type=BarType.repeat_start))
            else:
                barlines.append(Barline(position=pos, bar_type=_plain_bar_type(right_of_prev or left_of_next)))
        systems.append(System(barlines=barlines))

    seen: set = set()
    for rb in source.recurse().getElementsByClass(spanner.RepeatBracket):
        if id(rb) in seen:
            continue
        seen.add(id(rb))

        first = rb.getFirst()
        slot = slots.get(id(first)) if first is not None else None
        if slot is None:
            # bracket belongs to another part
            continue

        numbers = [int(n) for n in rb.numberRange if int(n) >= 1]
        if not numbers:
            logger.warning("skipping repeat bracket without numbers (measure %s)", getattr(first, "number", "?"))
            continue

        sys_idx, j = slot
        systems[sys_idx].alternate_endings.append(AlternateEnding(position=2 * j + 1, numbers=numbers))

    # re-validate so endings come out sorted
    systems = [System.model_validate(sy.model_dump()) for sy in systems]

    if title is None:
        md = getattr(source, "metadata", None)
        title = str(getattr(md, "title", None) or "") if md is not None else ""

    return ScoreDoc(version=1, title=title, systems=systems)


def load_score(path: str | Path, **kwargs) -> ScoreDoc:
    """
    Load a ScoreDoc from structural JSON or from MusicXML (via music21).
    kwargs are forwarded to music21_to_score for MusicXML input.
    """
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise FileNotFoundError(f"score not found: {path}")

    suffix = path.suffix.lower()
    if suffix in JSON_SUFFIXES:
        return ScoreDoc.model_validate_json(path.read_text(encoding="utf-8"))

    if suffix in MUSICXML_SUFFIXES:
        from music21 import converter  # type: ignore

        parsed = converter.parse(str(path))
        score = music21_to_score(parsed, **kwargs)
        if not score.title:
            score.title = path.stem
        return score

    raise ValueError(f"Unsupported score format: {path.suffix or '(none)'} (expected .json or MusicXML)")


def save_score(score: ScoreDoc, out_path: str | Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(score.model_dump_json(indent=2), encoding="utf-8")
    return out_path.resolve()
