#!/usr/bin/env python3
"""Validate the puzzle catalogue: FENs, legal solution lines and endings.

Every solution move and forced reply must be legal in sequence. A line
that leaves the game running is reported as a warning, or as an error
with --strict.
"""

import argparse
import sys

from arena.config import Settings, configure_logging
from arena.models import DIFFICULTIES
from arena.puzzles import PuzzleCatalogue


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate the puzzle catalogue")
    parser.add_argument("--puzzles", type=str, default=None,
                        help="Puzzle JSON file (defaults to the packaged catalogue)")
    parser.add_argument("--strict", action="store_true",
                        help="Treat warnings as errors")
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    try:
        catalogue = PuzzleCatalogue.load(args.puzzles or settings.puzzles_path)
    except (OSError, ValueError) as e:
        print(f"ERROR: could not load puzzles: {e}")
        return 1

    errors, warnings = catalogue.validate()

    print("=== Puzzle Validation ===")
    for difficulty in DIFFICULTIES:
        pool = catalogue.pool(difficulty)
        failed = {msg.split(":", 1)[0] for msg in errors}
        passed = sum(1 for p in pool if p.id not in failed)
        status = "PASS" if pool and passed == len(pool) else "FAIL"
        print(f"  {status}: {difficulty} ({passed}/{len(pool)} puzzles valid)")
        if not pool:
            errors.append(f"{difficulty}: no puzzles")

    print(f"\nTotal: {len(catalogue)} puzzles")

    if warnings:
        print(f"\n{len(warnings)} warning(s):")
        for warning in warnings:
            print(f"  - {warning}")
    if args.strict:
        errors.extend(warnings)

    if errors:
        print(f"\n{len(errors)} error(s):")
        for err in errors:
            print(f"  - {err}")
        return 1

    print("\nAll puzzles valid!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
