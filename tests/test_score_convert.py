from __future__ import annotations

from pathlib import Path

import pytest
from music21 import bar, layout, note, spanner, stream  # type: ignore

from core.location import Location
from core.playback import unroll
from core.repeat_index import RepeatIndex
from core.score_convert import load_score, music21_to_score, save_score
from core.score_models import BarType, ScoreDoc, System


def _measure(n: int, left=None, right=None) -> stream.Measure:
    m = stream.Measure(number=n)
    m.append(note.Note("C4", type="whole"))
    if left is not None:
        m.leftBarline = left
    if right is not None:
        m.rightBarline = right
    return m


def _part(*measures: stream.Measure) -> stream.Part:
    p = stream.Part()
    for m in measures:
        p.append(m)
    return p


def _kinds(system: System):
    return [(b.position, b.bar_type) for b in system.barlines]


def test_simple_repeat_positions_and_count():
    p = _part(
        _measure(1),
        _measure(2, left=bar.Repeat(direction="start")),
        _measure(3, right=bar.Repeat(direction="end", times=3)),
        _measure(4),
    )
    score = music21_to_score(p, measures_per_system=0)

    assert len(score.systems) == 1
    assert _kinds(score.systems[0]) == [
        (0, BarType.single),
        (2, BarType.repeat_start),
        (4, BarType.single),
        (6, BarType.repeat_end),
        (8, BarType.single),
    ]
    assert score.systems[0].barlines[3].repeat_count == 3


def test_repeat_without_times_uses_default_count():
    p = _part(_measure(1), _measure(2, right=bar.Repeat(direction="end")))
    score = music21_to_score(p, measures_per_system=0, default_repeat_count=4)
    assert score.systems[0].barlines[2].repeat_count == 4


def test_back_to_back_repeats_split_boundary():
    p = _part(
        _measure(1, right=bar.Repeat(direction="end")),
        _measure(2, left=bar.Repeat(direction="start")),
        _measure(3, right=bar.Repeat(direction="end")),
    )
    score = music21_to_score(p, measures_per_system=0)

    assert _kinds(score.systems[0]) == [
        (0, BarType.single),
        (2, BarType.repeat_end),
        (3, BarType.repeat_start),
        (4, BarType.single),
        (6, BarType.repeat_end),
    ]
    index = RepeatIndex(score)
    assert [s.start for s in index] == [Location(0, 0), Location(0, 3)]


def test_repeat_brackets_become_alternate_endings():
    m1 = _measure(1, left=bar.Repeat(direction="start"))
    m2 = _measure(2, right=bar.Repeat(direction="end"))
    m3 = _measure(3)
    m4 = _measure(4)
    p = _part(m1, m2, m3, m4)
    p.insert(0, spanner.RepeatBracket(m2, number=1))
    p.insert(0, spanner.RepeatBracket(m3, number=2))

    score = music21_to_score(p, measures_per_system=0)
    endings = score.systems[0].alternate_endings
    assert [(e.position, e.numbers) for e in endings] == [(3, [1]), (5, [2])]

    index = RepeatIndex(score)
    assert len(index) == 1
    section = index.sections[0]
    assert section.alternate_endings == {1: Location(0, 3), 2: Location(0, 5)}

    assert [loc.position for loc in unroll(score)] == [0, 2, 3, 4, 0, 2, 3, 5, 6, 8]


def test_measures_per_system_wraps():
    p = _part(*[_measure(i) for i in range(1, 6)])
    score = music21_to_score(p, measures_per_system=2)

    assert len(score.systems) == 3
    assert [len(s.barlines) for s in score.systems] == [3, 3, 2]


def test_system_layout_starts_new_system():
    m3 = _measure(3)
    m3.insert(0, layout.SystemLayout(isNew=True))
    p = _part(_measure(1), _measure(2), m3, _measure(4))

    score = music21_to_score(p, measures_per_system=0)
    assert len(score.systems) == 2
    assert [b.position for b in score.systems[1].barlines] == [0, 2, 4]


def test_final_and_double_barlines():
    p = _part(_measure(1, right=bar.Barline("double")), _measure(2, right=bar.Barline("final")))
    score = music21_to_score(p, measures_per_system=0)
    assert [b.bar_type for b in score.systems[0].barlines] == [
        BarType.single,
        BarType.double,
        BarType.double_bar_fine,
    ]


def test_save_and_load_json(tmp_path: Path):
    p = _part(_measure(1, left=bar.Repeat(direction="start")), _measure(2, right=bar.Repeat(direction="end")))
    score = music21_to_score(p, measures_per_system=0, title="tiny")

    out = save_score(score, tmp_path / "sub" / "tiny.json")
    assert out.exists()
    assert load_score(out) == score


def test_load_musicxml(tmp_path: Path):
    p = _part(
        _measure(1),
        _measure(2, left=bar.Repeat(direction="start")),
        _measure(3, right=bar.Repeat(direction="end", times=3)),
        _measure(4),
    )
    xml = tmp_path / "song.musicxml"
    p.write("musicxml", fp=str(xml))

    score = load_score(xml, measures_per_system=0)
    index = RepeatIndex(score)
    assert len(index) == 1
    assert index.sections[0].total_repeat_count == 3


def test_load_score_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_score(tmp_path / "missing.json")

    bad = tmp_path / "score.mid"
    bad.write_bytes(b"MThd")
    with pytest.raises(ValueError):
        load_score(bad)


def test_load_score_rejects_invalid_json(tmp_path: Path):
    p = tmp_path / "broken.json"
    p.write_text('{"systems": [{"barlines": [{"position": -1}]}]}', encoding="utf-8")
    with pytest.raises(ValueError):
        load_score(p)


def test_empty_part_gives_empty_score():
    score = music21_to_score(stream.Part(), measures_per_system=0)
    assert score == ScoreDoc(title=score.title)


def test_repeat_bracket_with_several_numbers():
    m1 = _measure(1, left=bar.Repeat(direction="start"))
    m2 = _measure(2, right=bar.Repeat(direction="end", times=3))
    m3 = _measure(3)
    p = _part(m1, m2, m3)
    p.insert(0, spanner.RepeatBracket(m2, number="1, 2"))
    p.insert(0, spanner.RepeatBracket(m3, number=3))

    score = music21_to_score(p, measures_per_system=0)
    endings = score.systems[0].alternate_endings
    assert [(e.position, e.numbers) for e in endings] == [(3, [1, 2]), (5, [3])]
