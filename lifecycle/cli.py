# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
DreamWeek CLI — inspect and drive one user's week from a terminal.

Usage:
    dreamweek week --user U                 Current week: goals and stats
    dreamweek rollover --user U             Roll over if the week is stale
    dreamweek rollover --user U --simulate  Force a rollover to next week
    dreamweek toggle ID --user U            Toggle a plain goal
    dreamweek increment ID --user U         One more completion
    dreamweek decrement ID --user U         Take one completion back
    dreamweek skip ID --user U              Hide a goal for this week
    dreamweek dreams FILE --user U          Load dreams from a JSON file
    dreamweek history --user U              Archived weeks
    dreamweek score --user U [--by-year]    Points ledger
    dreamweek --data-dir PATH ...           Override data directory

Output is JSON on stdout. Errors go to stderr with exit code 1.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List

from pydantic import ValidationError

from core.logging_setup import setup_logging
from core.paths import configure, get_paths
from lifecycle.config import load_config
from lifecycle.engine import WeekEngine
from lifecycle.schemas import Dream, LifecycleError
from lifecycle.store import JsonDocumentStore


def _print(data) -> None:
    print(json.dumps(data, indent=2))


def _load_dreams(path: Path) -> List[Dream]:
    raw = json.loads(path.read_text())
    if isinstance(raw, dict):
        raw = raw.get("dreams", [])
    return [Dream.model_validate(d) for d in raw]


async def _run(args) -> None:
    engine = WeekEngine(args.user, JsonDocumentStore(), config=load_config())
    try:
        cmd = args.command
        if cmd == "week":
            week = await engine.current_week()
            _print(week.to_doc())
        elif cmd == "rollover":
            result = await engine.check_rollover(simulate=args.simulate)
            _print(result.to_dict())
        elif cmd in ("toggle", "increment", "decrement", "skip"):
            tracker = await engine.tracker()
            goal = await getattr(tracker, cmd)(args.goal_id)
            _print(goal.to_doc())
        elif cmd == "dreams":
            doc = await engine.save_dreams(_load_dreams(args.file))
            _print({"dreams": len(doc.dreams), "templates": len(doc.weekly_goal_templates)})
        elif cmd == "history":
            _print([a.to_doc() for a in await engine.past_weeks()])
        elif cmd == "score":
            if args.by_year:
                years = await engine.score_by_year()
                _print({year: result.to_doc() for year, result in years.items()})
            else:
                _print((await engine.score()).to_doc())
    finally:
        engine.close()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog="dreamweek",
        description="DreamWeek — weekly goal lifecycle: templates, weeks, rollover, scoring",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Override data directory (default: $DREAMWEEK_DATA_DIR or ~/.dreamweek/)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug-level logging")

    sub = parser.add_subparsers(dest="command")

    def command(name, help_text):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--user", required=True, help="User id")
        return p

    command("week", help_text="Show the current week")
    rollover_p = command("rollover", help_text="Roll over a stale week")
    rollover_p.add_argument("--simulate", action="store_true",
                            help="Roll forward one week even if the calendar hasn't moved")
    for name, help_text in (
        ("toggle", "Toggle a plain goal"),
        ("increment", "Record one completion"),
        ("decrement", "Remove the latest completion"),
        ("skip", "Hide a goal for this week"),
    ):
        command(name, help_text).add_argument("goal_id", help="Goal instance id")
    dreams_p = command("dreams", help_text="Load dreams from a JSON file")
    dreams_p.add_argument("file", type=Path, help="JSON list of dreams (or {\"dreams\": [...]})")
    command("history", help_text="List archived weeks")
    score_p = command("score", help_text="Show the points ledger")
    score_p.add_argument("--by-year", action="store_true", dest="by_year",
                         help="Group the ledger by calendar year")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.data_dir is not None:
        configure(args.data_dir)
    get_paths().ensure_dirs()
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        asyncio.run(_run(args))
    except (LifecycleError, ValidationError, json.JSONDecodeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
