"""Response schemas and minification for MCP tool responses.

Tool results are read by an LLM agent, so move lists are compacted to
PGN strings and bulky history is reduced to what the agent needs.
The progress file on disk is NOT affected, only MCP return values.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_live_state(state: dict) -> dict:
    """Minify a LiveGame state dict for MCP response.

    Compacts the move list to a PGN string and keeps the formatted
    clocks instead of the raw second counters.

    Args:
        state: Full state dict (as produced by LiveGame.to_dict).

    Returns:
        Minified dict.
    """
    result = {}
    for key in (
        "game_id", "opponent", "time_control", "player_color", "fen", "turn",
        "clocks", "active", "reply_pending", "result", "status",
    ):
        if key in state:
            result[key] = state[key]

    result["moves"] = _moves_to_pgn_string(state.get("moves", []))

    # Removed fields: persona, timers, elapsed

    return result


def minify_daily_game(game: dict, state: str | None = None) -> dict:
    """Minify a DailyGame dict for MCP response.

    Args:
        game: DailyGame dict (from DailyGame.to_dict).
        state: Coordinator phase, if the game is still active.

    Returns:
        Minified dict.
    """
    result = {}
    for key in (
        "id", "title", "opponent", "fen", "color_to_move",
        "player_color", "reminders_enabled", "last_updated",
    ):
        if key in game:
            result[key] = game[key]

    result["moves"] = _moves_to_pgn_string(game.get("moves", []))
    result["state"] = state
    return result


def minify_game_record(record: dict) -> dict:
    """Minify an archived GameRecord dict for MCP response."""
    return {
        "id": record.get("id"),
        "mode": record.get("mode"),
        "opponent": record.get("opponent"),
        "result": record.get("result"),
        "player_color": record.get("player_color"),
        "accuracy": record.get("accuracy"),
        "moves": _moves_to_pgn_string(record.get("moves", [])),
    }


def minify_puzzle_state(state: dict) -> dict:
    """Minify a PuzzleSession state dict for MCP response.

    The trail becomes a PGN string numbered from the puzzle's side to
    move.

    Args:
        state: Full state dict (as produced by PuzzleSession.to_dict).

    Returns:
        Minified dict.
    """
    result = {}
    for key in (
        "puzzle_id", "difficulty", "themes", "side_to_move", "fen", "state",
        "solution_index", "solution_length", "attempts",
    ):
        if key in state:
            result[key] = state[key]

    result["trail"] = _moves_to_pgn_string(
        state.get("trail", []), black_first=state.get("side_to_move") == "b"
    )
    return result


def minify_summary(summary: dict) -> dict:
    """Minify a DashboardSummary dict for MCP response.

    Recent games are reduced to their count; puzzle accuracy keeps the
    last 5 values.
    """
    result = {
        key: value
        for key, value in summary.items()
        if key not in ("recent_games", "puzzle_accuracy")
    }
    result["games_in_range"] = len(summary.get("recent_games", []))
    result["puzzle_accuracy"] = list(summary.get("puzzle_accuracy", []))[-5:]
    return result


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str], black_first: bool = False) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6', and with
    ``black_first`` ['Rd1#'] -> '1...Rd1#'.

    Args:
        moves: List of SAN move strings.
        black_first: True when the first move is Black's.

    Returns:
        PGN-formatted move string.
    """
    if not moves:
        return ""

    parts = []
    offset = 1 if black_first else 0
    for i, move in enumerate(moves):
        ply = i + offset
        move_num = ply // 2 + 1
        if ply % 2 == 0:
            # White's move: prepend move number
            parts.append(f"{move_num}.{move}")
        elif i == 0:
            parts.append(f"{move_num}...{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

LIVE_STATE_SCHEMA = {
    "game_id": str,
    "opponent": str,
    "time_control": str,
    "player_color": str,
    "fen": str,
    "turn": str,
    "clocks": dict,
    "active": bool,
    "reply_pending": bool,
    "result": (str, type(None)),
    "status": str,
    "moves": str,
}

DAILY_GAME_SCHEMA = {
    "id": str,
    "title": str,
    "opponent": str,
    "fen": str,
    "color_to_move": str,
    "player_color": str,
    "reminders_enabled": bool,
    "moves": str,
    "state": (str, type(None)),
}

PUZZLE_STATE_SCHEMA = {
    "puzzle_id": str,
    "difficulty": str,
    "themes": list,
    "fen": str,
    "state": str,
    "solution_index": int,
    "solution_length": int,
    "attempts": int,
    "trail": str,
}

PROGRESS_SCHEMA = {
    "live_rating": int,
    "daily_rating": int,
    "puzzle_rating": int,
    "wins": int,
    "draws": int,
    "losses": int,
    "games_in_range": int,
    "puzzle_accuracy": list,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when CHESS_ARENA_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("CHESS_ARENA_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
