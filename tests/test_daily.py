"""Tests for DailyGameCoordinator.

The scheduler runs in manual mode so each engine reply happens exactly
when the test calls run_pending().
"""

from __future__ import annotations

import random
import time
from unittest.mock import patch

import chess
import pytest

from arena.daily import (
    DailyGameCoordinator,
    DailyState,
    board_for,
    daily_accuracy,
    game_result,
)
from arena.engine import EngineExhaustedError
from arena.engine import select_move as engine_select_move
from arena.models import DailyGame
from arena.progress import ProgressStore
from arena.scheduler import ReplyScheduler


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SCHOLAR_MOVES = ["e4", "e5", "Bc4", "Nc6", "Qh5", "Nf6"]


def _coordinator(store, scheduler, settings, seed: int = 0) -> DailyGameCoordinator:
    return DailyGameCoordinator(store, scheduler, random.Random(seed), settings)


def _seed_game(store, moves: list[str], persona: str = "balanced",
               player_color: str = "white") -> DailyGame:
    """Store a daily game part-way through the given moves."""
    board = chess.Board()
    for san in moves:
        board.push_san(san)
    game = DailyGame(
        id="daily-seeded",
        title="Daily Clash #1",
        opponent="Tactician",
        persona=persona,
        fen=board.fen(),
        moves=list(moves),
        color_to_move="w" if board.turn == chess.WHITE else "b",
        player_color=player_color,
    )
    return store.upsert_daily_game(game)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateGame:

    def test_white_waits_for_player(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game("balanced", "white")
        assert game.id.startswith("daily-")
        assert game.title == "Daily Clash #1"
        assert game.opponent == "Strategist"
        assert game.fen == chess.STARTING_FEN
        assert daily.state(game.id) is DailyState.AWAITING_PLAYER_MOVE
        assert scheduler.pending_keys() == []

    def test_black_gets_engine_opening(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game("tactical", "black")
        assert daily.state(game.id) is DailyState.AWAITING_ENGINE_REPLY

        scheduler.run_pending()
        stored = store.get_daily_game(game.id)
        assert len(stored.moves) == 1
        assert stored.color_to_move == "b"
        assert stored.is_player_turn
        assert daily.state(game.id) is DailyState.AWAITING_PLAYER_MOVE

    def test_titles_are_numbered(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        daily.create_game()
        second = daily.create_game()
        custom = daily.create_game(title="Sunday game")
        assert second.title == "Daily Clash #2"
        assert custom.title == "Sunday game"
        assert [g.id for g in daily.games][0] == custom.id

    def test_invalid_configuration(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        with pytest.raises(ValueError):
            daily.create_game("grandmaster", "white")
        with pytest.raises(ValueError):
            daily.create_game("balanced", "green")
        assert store.daily_games == []


# ---------------------------------------------------------------------------
# Player moves and replies
# ---------------------------------------------------------------------------


class TestMoves:

    def test_move_then_reply(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game("balanced", "white")

        assert daily.submit_move(game.id, "e4") is True
        stored = store.get_daily_game(game.id)
        assert stored.moves == ["e4"]
        assert stored.color_to_move == "b"
        assert daily.state(game.id) is DailyState.AWAITING_ENGINE_REPLY

        scheduler.run_pending()
        stored = store.get_daily_game(game.id)
        assert len(stored.moves) == 2
        assert stored.color_to_move == "w"
        assert stored.fen == board_for(stored).fen()

    def test_uci_move(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        assert daily.submit_move(game.id, "g1f3") is True
        assert store.get_daily_game(game.id).moves == ["Nf3"]

    def test_rejected_while_reply_pending(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        daily.submit_move(game.id, "e4")
        assert daily.submit_move(game.id, "e5") is False
        assert daily.submit_move(game.id, "d4") is False
        assert store.get_daily_game(game.id).moves == ["e4"]

    def test_rejected_out_of_turn(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game("balanced", "black")
        before = store.get_daily_game(game.id)
        assert daily.submit_move(game.id, "e4") is False
        assert store.get_daily_game(game.id) == before

    def test_illegal_move_rejected(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        assert daily.submit_move(game.id, "e5") is False
        assert daily.submit_move(game.id, "Ke2") is False
        assert store.get_daily_game(game.id).moves == []
        assert scheduler.pending_keys() == []

    def test_unknown_game_rejected(self, store, scheduler, settings):
        assert _coordinator(store, scheduler, settings).submit_move("daily-missing", "e4") is False

    def test_stale_reply_discarded(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        daily.submit_move(game.id, "e4")
        store.update_daily_game(game.id, {
            "fen": chess.STARTING_FEN, "moves": [], "color_to_move": "w",
        })
        scheduler.run_pending()
        assert store.get_daily_game(game.id).moves == []

    def test_reply_for_removed_game_discarded(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        daily.submit_move(game.id, "e4")
        store.reset()
        scheduler.run_pending()
        assert store.daily_games == []
        assert store.games == []

    def test_replies_use_each_games_persona(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = _seed_game(store, ["f3", "e5"], persona="tactical")
        with patch("arena.daily.select_move", wraps=engine_select_move) as spy:
            daily.submit_move(game.id, "g4")
            scheduler.run_pending()
        assert spy.call_args.args[1] == "tactical"

    def test_engine_exhaustion_is_fatal(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        daily.submit_move(game.id, "e4")
        with patch("arena.daily.select_move", return_value=None):
            with pytest.raises(EngineExhaustedError):
                scheduler.run_pending()

    def test_timer_mode_reply_arrives(self, store, settings):
        scheduler = ReplyScheduler(autorun=True)
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        daily.submit_move(game.id, "d4")
        deadline = time.monotonic() + 5
        while len(store.get_daily_game(game.id).moves) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(store.get_daily_game(game.id).moves) == 2


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class TestCompletion:

    def test_player_checkmate_archives_win(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = _seed_game(store, _SCHOLAR_MOVES)
        assert daily.submit_move(game.id, "Qxf7#") is True

        assert store.get_daily_game(game.id) is None
        record = store.games[0]
        assert record.id.startswith(f"{game.id}-completed-")
        assert record.result == "white"
        assert record.mode == "daily"
        assert record.moves[-1] == "Qxf7#"
        assert record.accuracy == 87
        assert record.duration_seconds == 7 * 45
        assert store.ratings.daily_rating == 1341
        assert store.ratings.daily_streak == 1
        assert scheduler.pending_keys() == []

    def test_engine_checkmate_archives_loss(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = _seed_game(store, ["f3", "e5"], persona="tactical")
        daily.submit_move(game.id, "g4")
        scheduler.run_pending()

        assert store.get_daily_game(game.id) is None
        record = store.games[0]
        assert record.result == "black"
        assert record.moves == ("f3", "e5", "g4", "Qh4#")
        assert record.accuracy == 70
        assert store.ratings.daily_rating == 1309
        assert store.ratings.live_rating == 1280

    def test_threefold_repetition_archives_draw(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = _seed_game(store, ["Nf3", "Nf6", "Ng1", "Ng8"] * 2)
        assert daily.submit_move(game.id, "Nf3") is True

        assert store.get_daily_game(game.id) is None
        record = store.games[0]
        assert record.result == "draw"
        assert len(record.moves) == 9
        assert record.accuracy == 76
        assert store.ratings.daily_rating == 1325
        assert store.ratings.daily_streak == 0
        assert scheduler.pending_keys() == []

    def test_game_result(self):
        assert game_result(chess.Board("7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")) == "draw"
        mated = chess.Board("rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3")
        assert game_result(mated) == "black"

    def test_accuracy_formula(self):
        assert daily_accuracy("white", "white", 7) == 87
        assert daily_accuracy("black", "white", 4) == 70
        assert daily_accuracy("draw", "white", 50) == 60
        assert daily_accuracy("draw", "white", 100) == 58
        assert daily_accuracy("white", "white", 0) == 90


# ---------------------------------------------------------------------------
# Reminders and cancellation
# ---------------------------------------------------------------------------


class TestHousekeeping:

    def test_set_reminders(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        assert daily.set_reminders(game.id, False).reminders_enabled is False
        assert store.get_daily_game(game.id).reminders_enabled is False
        assert daily.set_reminders("daily-missing", True) is None

    def test_cancel_pending(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        first = daily.create_game("balanced", "black")
        second = daily.create_game("casual", "black")
        daily.cancel_pending(first.id)
        assert scheduler.pending_keys() == [second.id]
        daily.cancel_pending()
        assert scheduler.pending_keys() == []


# ---------------------------------------------------------------------------
# Restart
# ---------------------------------------------------------------------------


class TestRestart:

    def test_owed_reply_resumes_after_restart(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game("balanced", "white")
        daily.submit_move(game.id, "e4")
        scheduler.cancel_all()

        reloaded = ProgressStore(settings.state_path)
        fresh_scheduler = ReplyScheduler(autorun=False)
        restarted = _coordinator(reloaded, fresh_scheduler, settings)
        assert fresh_scheduler.is_pending(game.id)
        assert restarted.state(game.id) is DailyState.AWAITING_ENGINE_REPLY

        assert fresh_scheduler.run_pending() == 1
        assert len(reloaded.get_daily_game(game.id).moves) == 2
        assert restarted.state(game.id) is DailyState.AWAITING_PLAYER_MOVE
        assert restarted.submit_move(game.id, "d4") is True

    def test_black_opening_resumes_after_restart(self, store, scheduler, settings):
        game = _coordinator(store, scheduler, settings).create_game("casual", "black")
        scheduler.cancel_all()

        fresh_scheduler = ReplyScheduler(autorun=False)
        restarted = _coordinator(ProgressStore(settings.state_path), fresh_scheduler, settings)
        assert fresh_scheduler.pending_keys() == [game.id]
        fresh_scheduler.run_pending()
        assert restarted.state(game.id) is DailyState.AWAITING_PLAYER_MOVE

    def test_player_turn_games_not_scheduled(self, store, scheduler, settings):
        _seed_game(store, ["e4", "e5"])
        daily = _coordinator(store, scheduler, settings)
        assert scheduler.pending_keys() == []
        assert daily.resume_pending() == []

    def test_pending_reply_not_doubled(self, store, scheduler, settings):
        daily = _coordinator(store, scheduler, settings)
        game = daily.create_game()
        daily.submit_move(game.id, "e4")
        assert _coordinator(store, scheduler, settings).resume_pending() == []
        assert scheduler.pending_keys() == [game.id]
