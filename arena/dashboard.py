"""Performance dashboard: summary statistics and a rich terminal view.

Usage:
    python -m arena.dashboard [--range 10|25|all] [--state PATH] [--json]
"""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict, dataclass, field

from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from arena.config import Settings, configure_logging
from arena.models import ACCURACY_HISTORY_LIMIT, GameRecord
from arena.progress import ProgressStore

VIEW_RANGES = ("10", "25", "all")


@dataclass
class DashboardSummary:
    view_range: str
    live_rating: int
    daily_rating: int
    puzzle_rating: int
    live_streak: int
    daily_streak: int
    puzzle_streak: int
    wins: int = 0
    draws: int = 0
    losses: int = 0
    average_moves: int = 0
    live_games: int = 0
    daily_games: int = 0
    puzzles_solved: int = 0
    puzzle_accuracy: list[float] = field(default_factory=list)
    recent_games: list[GameRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["recent_games"] = [g.to_dict() for g in self.recent_games]
        return data


def format_duration(seconds: int) -> str:
    return f"{seconds // 60}m {seconds % 60}s"


def summarize(store: ProgressStore, view_range: str = "10") -> DashboardSummary:
    """Aggregate the store's history over the most recent games.

    Args:
        store: Progress store to read.
        view_range: ``"10"``, ``"25"`` or ``"all"`` most recent games.

    Raises:
        ValueError: If the range is not one of the above.
    """
    if view_range not in VIEW_RANGES:
        raise ValueError(f"view_range must be one of {VIEW_RANGES}, got {view_range!r}")

    games = store.games
    sliced = games if view_range == "all" else games[:int(view_range)]
    ratings = store.ratings
    puzzles = store.puzzle_history

    wins = sum(1 for g in sliced if g.result == g.player_color)
    draws = sum(1 for g in sliced if g.result == "draw")
    total_moves = sum(len(g.moves) for g in sliced)

    return DashboardSummary(
        view_range=view_range,
        live_rating=ratings.live_rating,
        daily_rating=ratings.daily_rating,
        puzzle_rating=ratings.puzzle_rating,
        live_streak=ratings.live_streak,
        daily_streak=ratings.daily_streak,
        puzzle_streak=ratings.puzzle_streak,
        wins=wins,
        draws=draws,
        losses=len(sliced) - wins - draws,
        average_moves=round(total_moves / len(sliced)) if sliced else 0,
        live_games=sum(1 for g in sliced if g.mode == "live"),
        daily_games=sum(1 for g in sliced if g.mode == "daily"),
        puzzles_solved=sum(1 for p in puzzles if p.solved),
        # Latest accuracy of the most recently attempted puzzles, oldest first
        puzzle_accuracy=[
            p.accuracy_history[-1] if p.accuracy_history else 0.0
            for p in puzzles[:ACCURACY_HISTORY_LIMIT]
        ][::-1],
        recent_games=sliced,
    )


def _ratings_panel(summary: DashboardSummary) -> Columns:
    cards = []
    for title, rating, streak, style in (
        ("Live Rating", summary.live_rating, summary.live_streak, "blue"),
        ("Daily Performance", summary.daily_rating, summary.daily_streak, "green"),
        ("Tactical Rating", summary.puzzle_rating, summary.puzzle_streak, "yellow"),
    ):
        body = Text(f"{rating}\n", style="bold")
        body.append(f"streak {streak}", style="dim")
        cards.append(Panel(body, title=title, border_style=style, width=24))
    return Columns(cards)


def _results_table(summary: DashboardSummary) -> Table:
    label = "All games" if summary.view_range == "all" else f"Last {summary.view_range} games"
    table = Table(title=label, show_header=False, box=None, padding=(0, 1))
    table.add_column(justify="left")
    table.add_column(justify="right")
    table.add_row(Text("Wins", style="green"), str(summary.wins))
    table.add_row(Text("Draws", style="cyan"), str(summary.draws))
    table.add_row(Text("Losses", style="red"), str(summary.losses))
    table.add_row("Average moves", str(summary.average_moves))
    table.add_row("Live / daily", f"{summary.live_games} / {summary.daily_games}")
    table.add_row("Puzzles solved", str(summary.puzzles_solved))
    return table


def _recent_games_table(games: list[GameRecord]) -> Table:
    table = Table(title="Recent Games", show_edge=False)
    table.add_column("Mode")
    table.add_column("Opponent")
    table.add_column("Result")
    table.add_column("Accuracy", justify="right")
    table.add_column("Moves", justify="right")
    table.add_column("Duration", justify="right")
    for game in games:
        if game.result == "draw":
            outcome = Text("Draw", style="cyan")
        elif game.result == game.player_color:
            outcome = Text("Win", style="green")
        else:
            outcome = Text("Loss", style="red")
        table.add_row(
            game.mode,
            game.opponent,
            outcome,
            f"{game.accuracy:.0f}%",
            str(len(game.moves)),
            format_duration(game.duration_seconds),
        )
    return table


def _puzzle_trend(accuracies: list[float]) -> Text:
    if not accuracies:
        return Text("No puzzle attempts yet.", style="dim")
    bars = " ▁▂▃▄▅▆▇█"
    spark = "".join(bars[min(8, int(a / 100 * 8))] for a in accuracies)
    text = Text("Puzzle accuracy: ", style="bold")
    text.append(spark, style="yellow")
    text.append(f"  latest {accuracies[-1]:.0f}%")
    return text


def render_dashboard(summary: DashboardSummary) -> Panel:
    """Build the dashboard renderable for a summary."""
    body = Group(
        _ratings_panel(summary),
        _results_table(summary),
        _puzzle_trend(summary.puzzle_accuracy),
        _recent_games_table(summary.recent_games),
    )
    return Panel(body, title="Performance Dashboard", border_style="blue")


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for dashboard.py."""
    parser = argparse.ArgumentParser(description="Chess Arena performance dashboard")
    parser.add_argument("--range", dest="view_range", choices=VIEW_RANGES, default="10",
                        help="How many recent games to summarize")
    parser.add_argument("--state", type=str, default=None, help="Path to progress JSON")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    args = parser.parse_args()

    configure_logging(Settings.from_env().log_level)
    summary = summarize(ProgressStore(args.state), args.view_range)
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
        return
    Console().print(render_dashboard(summary))


if __name__ == "__main__":
    main()
