from __future__ import annotations

import argparse
from pathlib import Path

from core.score_convert import load_score, save_score


def xml_to_json(
    xml_path: str | Path,
    *,
    out_dir: str | Path | None = None,
    out_path: str | Path | None = None,
    measures_per_system: int | None = None,
) -> Path:
    """
    MusicXML -> structural score JSON (systems, barlines, alternate endings).
    """
    xml_path = Path(xml_path)
    score = load_score(xml_path, measures_per_system=measures_per_system)

    if out_path is not None:
        p = Path(out_path)
        if p.exists() and p.is_dir():
            p = p / f"{xml_path.stem}.json"
        if p.suffix.lower() != ".json":
            p = p.with_suffix(".json")
        return save_score(score, p)

    out_base = Path(out_dir) if out_dir is not None else xml_path.parent
    return save_score(score, out_base / f"{xml_path.stem}.json")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="repeatmap.score", description="Score tools (local)")
    sub = p.add_subparsers(dest="cmd", required=True)

    x = sub.add_parser("xml2json", help="Convert MusicXML to structural score JSON")
    x.add_argument("xml", type=str, help="Path to .musicxml / .xml / .mxl")
    x.add_argument("--out-dir", default=None, help="Output directory (default: same as xml)")
    x.add_argument("--out", default=None, help="Explicit output file path (.json)")
    x.add_argument("--measures-per-system", dest="measures_per_system", type=int, default=None,
                   help="Wrap systems every N measures (default: settings)")

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "xml2json":
        out = xml_to_json(
            args.xml,
            out_dir=args.out_dir,
            out_path=args.out,
            measures_per_system=args.measures_per_system,
        )
        print(str(out))
        return 0

    raise SystemExit(f"Unknown command: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
