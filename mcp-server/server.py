"""MCP server for Chess Arena.

Exposes live games, daily correspondence games, puzzle training and the
progress dashboard to an agent via FastMCP. Sessions live in memory for
the lifetime of the server; ratings and history persist through the
progress store in the data directory.
"""

from __future__ import annotations

import random
import sys
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from arena.config import Settings, configure_logging
from arena.daily import DailyGameCoordinator
from arena.dashboard import summarize
from arena.live import LiveGame
from arena.progress import ProgressStore
from arena.puzzles import PuzzleCatalogue, PuzzleSession
from arena.scheduler import ReplyScheduler

from response_schemas import (  # noqa: E402
    minify_daily_game,
    minify_game_record,
    minify_live_state,
    minify_puzzle_state,
    minify_summary,
)

mcp = FastMCP("arena")

_settings = Settings.from_env()
configure_logging(_settings.log_level)

_scheduler = ReplyScheduler()
_rng = random.Random()
_store: ProgressStore | None = None
_catalogue: PuzzleCatalogue | None = None
_daily: DailyGameCoordinator | None = None
_live: LiveGame | None = None
_puzzle: PuzzleSession | None = None


def configure(
    data_dir: str | Path | None = None,
    autorun: bool = True,
    seed: int | None = None,
) -> None:
    """Drop every session and rebind the server to a data directory.

    Args:
        data_dir: Directory holding progress.json. Defaults to the
            environment settings.
        autorun: False queues deferred replies until
            ``_scheduler.run_pending()`` is called.
        seed: Seed for the shared random source.
    """
    global _settings, _scheduler, _rng
    global _store, _catalogue, _daily, _live, _puzzle

    _scheduler.cancel_all()
    settings = Settings.from_env()
    _settings = settings.with_data_dir(data_dir) if data_dir else settings
    _scheduler = ReplyScheduler(autorun=autorun)
    _rng = random.Random(seed)
    _store = None
    _catalogue = None
    _daily = None
    _live = None
    _puzzle = None


def _get_store() -> ProgressStore:
    global _store
    if _store is None:
        _store = ProgressStore(_settings.state_path)
    return _store


def _get_daily() -> DailyGameCoordinator:
    global _daily
    if _daily is None:
        _daily = DailyGameCoordinator(_get_store(), _scheduler, _rng, _settings)
    return _daily


def _get_puzzle() -> PuzzleSession:
    global _catalogue, _puzzle
    if _catalogue is None:
        _catalogue = PuzzleCatalogue.load(_settings.puzzles_path)
    if _puzzle is None:
        _puzzle = PuzzleSession(_catalogue, _get_store(), rng=_rng)
    return _puzzle


# ---------------------------------------------------------------------------
# Live games
# ---------------------------------------------------------------------------


@mcp.tool()
def live_new_game(
    opponent: str = "balanced",
    time_control: str = "10+0",
    player_color: str = "white",
    start_clock: bool = True,
) -> dict:
    """Start a live game against a persona.

    Args:
        opponent: Persona id: 'casual', 'balanced' or 'tactical'.
        time_control: '5+0', '10+0' or '15+10'.
        player_color: 'white' or 'black'. As black the engine opens.
        start_clock: Run the one-second clock in the background.

    Returns:
        Live game state with moves as a PGN string.
    """
    global _live
    try:
        if _live is None:
            _live = LiveGame(
                _get_store(), _scheduler, opponent, time_control, player_color,
                rng=_rng, settings=_settings,
            )
        else:
            _live.configure(opponent, time_control, player_color)
    except ValueError as exc:
        return {"error": str(exc)}

    _live.start()
    if start_clock:
        _live.start_clock()
    return minify_live_state(_live.to_dict())


@mcp.tool()
def live_move(move: str) -> dict:
    """Play a move in the live game.

    The engine answers after a short delay; poll live_state to see it.

    Args:
        move: Move in SAN (e.g., 'e4', 'Nf3') or UCI (e.g., 'e2e4').

    Returns:
        Dict with 'accepted' plus the live game state.
    """
    if _live is None:
        return {"error": "No live game. Call live_new_game first."}
    accepted = _live.submit_move(move)
    return {"accepted": accepted, **minify_live_state(_live.to_dict())}


@mcp.tool()
def live_tick(seconds: int = 1) -> dict:
    """Advance the live clock manually.

    Args:
        seconds: Number of one-second ticks to apply.

    Returns:
        Live game state after the ticks.
    """
    if _live is None:
        return {"error": "No live game. Call live_new_game first."}
    for _ in range(max(0, seconds)):
        if not _live.tick():
            break
    return minify_live_state(_live.to_dict())


@mcp.tool()
def live_state() -> dict:
    """Get the live game's board, clocks and result."""
    if _live is None:
        return {"error": "No live game. Call live_new_game first."}
    state = minify_live_state(_live.to_dict())
    if _live.record is not None:
        state["record"] = minify_game_record(_live.record.to_dict())
    return state


# ---------------------------------------------------------------------------
# Daily games
# ---------------------------------------------------------------------------


def _daily_payload(game_id: str) -> dict | None:
    daily = _get_daily()
    game = _get_store().get_daily_game(game_id)
    if game is None:
        return None
    phase = daily.state(game_id)
    return minify_daily_game(game.to_dict(), phase.value if phase else None)


@mcp.tool()
def daily_new_game(
    opponent: str = "balanced",
    player_color: str = "white",
    title: str | None = None,
) -> dict:
    """Create a daily correspondence game.

    Args:
        opponent: Persona id: 'balanced', 'tactical' or 'casual'.
        player_color: 'white' or 'black'. As black the engine opens.
        title: Optional title; defaults to 'Daily Clash #n'.

    Returns:
        The new daily game.
    """
    try:
        game = _get_daily().create_game(opponent, player_color, title)
    except ValueError as exc:
        return {"error": str(exc)}
    return _daily_payload(game.id)


@mcp.tool()
def daily_move(game_id: str, move: str) -> dict:
    """Play a move in a daily game.

    Args:
        game_id: Id returned by daily_new_game.
        move: Move in SAN or UCI.

    Returns:
        Dict with 'accepted', the game (None once finished) and the
        archived record when the move ended the game.
    """
    store = _get_store()
    if store.get_daily_game(game_id) is None:
        return {"error": f"Daily game not found: {game_id}"}

    accepted = _get_daily().submit_move(game_id, move)
    response = {"accepted": accepted, "game": _daily_payload(game_id)}
    if response["game"] is None:
        finished = [g for g in store.games if g.id.startswith(f"{game_id}-completed-")]
        if finished:
            response["record"] = minify_game_record(finished[0].to_dict())
    return response


@mcp.tool()
def daily_list() -> dict:
    """List active daily games, newest first."""
    games = [_daily_payload(g.id) for g in _get_store().daily_games]
    return {"games": [g for g in games if g is not None]}


@mcp.tool()
def daily_set_reminders(game_id: str, enabled: bool) -> dict:
    """Turn reminders on or off for a daily game."""
    if _get_daily().set_reminders(game_id, enabled) is None:
        return {"error": f"Daily game not found: {game_id}"}
    return _daily_payload(game_id)


# ---------------------------------------------------------------------------
# Puzzles
# ---------------------------------------------------------------------------


@mcp.tool()
def puzzle_state() -> dict:
    """Get the current puzzle, loading one if needed."""
    return minify_puzzle_state(_get_puzzle().to_dict())


@mcp.tool()
def puzzle_move(move: str) -> dict:
    """Submit the next move of the current puzzle's solution.

    Args:
        move: Move in SAN or UCI.

    Returns:
        Dict with 'accepted' plus the puzzle state. A wrong move is taken
        back and counted as an attempt.
    """
    session = _get_puzzle()
    accepted = session.submit_move(move)
    return {"accepted": accepted, **minify_puzzle_state(session.to_dict())}


@mcp.tool()
def puzzle_skip() -> dict:
    """Give up on the current puzzle and load another one."""
    session = _get_puzzle()
    session.skip()
    return minify_puzzle_state(session.to_dict())


@mcp.tool()
def puzzle_replay() -> dict:
    """Restart the current puzzle from its first move."""
    session = _get_puzzle()
    session.replay()
    return minify_puzzle_state(session.to_dict())


@mcp.tool()
def puzzle_next() -> dict:
    """Load a new puzzle at the current difficulty."""
    session = _get_puzzle()
    session.next_puzzle()
    return minify_puzzle_state(session.to_dict())


@mcp.tool()
def puzzle_set_difficulty(difficulty: str) -> dict:
    """Switch difficulty and load a puzzle from that pool.

    Args:
        difficulty: 'beginner', 'intermediate' or 'advanced'.
    """
    session = _get_puzzle()
    try:
        session.change_difficulty(difficulty)
    except ValueError as exc:
        return {"error": str(exc)}
    return minify_puzzle_state(session.to_dict())


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@mcp.tool()
def get_progress(view_range: str = "10") -> dict:
    """Get ratings, streaks and results over recent games.

    Args:
        view_range: '10', '25' or 'all' most recent games.
    """
    try:
        summary = summarize(_get_store(), view_range)
    except ValueError as exc:
        return {"error": str(exc)}
    return minify_summary(summary.to_dict())


@mcp.tool()
def reset_progress() -> dict:
    """Restore seed ratings and clear all history and daily games."""
    _get_daily().cancel_pending()
    store = _get_store()
    store.reset()
    return {"message": "Progress reset", **store.ratings.to_dict()}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run()
