from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from core.config import get_settings
from core.location import Location
from core.models import LocationModel, SectionSummary
from core.playback import PlaybackLimitExceeded, unroll
from core.repeat_index import RepeatedSection, RepeatIndex
from core.score_check import check_score
from core.score_convert import load_score
from core.score_models import ScoreDoc


# exit codes (keep stable)
EXIT_OK = 0
EXIT_ISSUES = 2
EXIT_PLAYBACK_LIMIT = 3
EXIT_NOT_FOUND = 4
EXIT_BAD_ARGS = 5

logger = logging.getLogger("repeatmap.cli")


def _print_err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _setup_logging(verbose: bool) -> None:
    if logging.getLogger().handlers:
        return
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _load(args: argparse.Namespace) -> ScoreDoc:
    kwargs = {}
    if getattr(args, "measures_per_system", None) is not None:
        kwargs["measures_per_system"] = int(args.measures_per_system)
    return load_score(Path(args.score), **kwargs)


def _format_section(section: RepeatedSection) -> str:
    ends = ", ".join(f"{loc} x{count}" for loc, count in section.end_bars.items())
    line = f"start={section.start} end_bars=[{ends}] total={section.total_repeat_count}"
    if section.alternate_ending_count:
        alts = ", ".join(f"{num}->{loc}" for num, loc in section.alternate_endings.items())
        line += f" endings=[{alts}]"
    return line


def _add_score_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("score", type=str, help="Score file (.json structure or MusicXML)")
    p.add_argument("--json", dest="as_json", action="store_true", help="Print JSON instead of text")
    p.add_argument(
        "--measures-per-system",
        dest="measures_per_system",
        type=int,
        default=None,
        help="MusicXML only: wrap systems every N measures (default: settings)",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="repeatmap", description="Repeat structure tools for scores")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("index", help="List the repeated sections of a score")
    _add_score_args(i)

    f = sub.add_parser("find", help="Innermost repeated section enclosing a location")
    _add_score_args(f)
    f.add_argument("system", type=int, help="System index (0-based)")
    f.add_argument("position", type=int, help="Position inside the system")

    u = sub.add_parser("unroll", help="Print locations in playback order (repeats followed)")
    _add_score_args(u)
    u.add_argument("--max-steps", dest="max_steps", type=int, default=None, help="Abort after N locations")

    c = sub.add_parser("check", help="Report repeat-structure problems")
    _add_score_args(c)

    return p


# -------------------------------
# Commands
# -------------------------------
def cmd_index(args: argparse.Namespace) -> int:
    index = RepeatIndex(_load(args))

    if args.as_json:
        _print_json([SectionSummary.from_section(s).model_dump(mode="json") for s in index])
        return EXIT_OK

    if not index:
        print("no repeated sections")
    for section in index:
        print(_format_section(section))
    return EXIT_OK


def cmd_find(args: argparse.Namespace) -> int:
    if args.system < 0 or args.position < 0:
        _print_err("system and position must be >= 0")
        return EXIT_BAD_ARGS

    loc = Location(args.system, args.position)
    section = RepeatIndex(_load(args)).find(loc)
    if section is None:
        _print_err(f"no repeated section at {loc}")
        return EXIT_NOT_FOUND

    if args.as_json:
        _print_json(SectionSummary.from_section(section).model_dump(mode="json"))
    else:
        print(_format_section(section))
    return EXIT_OK


def cmd_unroll(args: argparse.Namespace) -> int:
    if args.max_steps is not None and args.max_steps < 1:
        _print_err("--max-steps must be >= 1")
        return EXIT_BAD_ARGS

    try:
        locations = unroll(_load(args), max_steps=args.max_steps)
    except PlaybackLimitExceeded as e:
        _print_err(str(e))
        return EXIT_PLAYBACK_LIMIT

    if args.as_json:
        _print_json([LocationModel.from_location(loc).model_dump() for loc in locations])
    else:
        for loc in locations:
            print(f"{loc.system}\t{loc.position}")
    return EXIT_OK


def cmd_check(args: argparse.Namespace) -> int:
    issues = check_score(_load(args))

    if args.as_json:
        _print_json([
            {"kind": i.kind.value, "location": LocationModel.from_location(i.location).model_dump(), "message": i.message}
            for i in issues
        ])
    else:
        if not issues:
            print("ok")
        for i in issues:
            print(f"{i.kind.value}: {i.message}")

    return EXIT_ISSUES if issues else EXIT_OK


COMMANDS = {
    "index": cmd_index,
    "find": cmd_find,
    "unroll": cmd_unroll,
    "check": cmd_check,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(bool(args.verbose))

    handler = COMMANDS.get(args.cmd)
    if handler is None:
        _print_err("Unknown command.")
        return EXIT_BAD_ARGS

    try:
        return handler(args)
    except FileNotFoundError as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS
    except ValidationError as e:
        _print_err(f"Invalid score: {e}")
        return EXIT_BAD_ARGS
    except ValueError as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS


if __name__ == "__main__":
    raise SystemExit(main())
