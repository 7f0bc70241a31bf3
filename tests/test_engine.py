"""Pytest tests for the persona move selector.

Covers: legality for every persona, terminal positions, persona
differences on tactical positions, seeded determinism, the
ArenaEngine wrapper, move parsing and the move CLI.
"""

from __future__ import annotations

import json
import random
from unittest.mock import patch

import chess
import pytest

from arena.engine import (
    PERSONA_WEIGHTS,
    ArenaEngine,
    EngineExhaustedError,
    _cli_move,
    rank_moves,
    select_move,
)
from arena.models import PERSONA_IDS, parse_move


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_BACK_RANK_FEN = "6k1/5ppp/8/8/8/8/5PPP/3R2K1 w - - 0 1"
_FREE_QUEEN_FEN = "4k3/8/8/3q4/8/8/8/3RK3 w - - 0 1"
_FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
_STALEMATE_FEN = "7k/5Q2/6K1/8/8/8/8/8 b - - 0 1"


def _play_out(persona: str, seed: int, plies: int = 40) -> list[tuple[chess.Board, chess.Move]]:
    """Self-play from the start; return (position, chosen move) pairs."""
    rng = random.Random(seed)
    board = chess.Board()
    choices = []
    for _ in range(plies):
        move = select_move(board, persona, rng)
        if move is None:
            break
        choices.append((board.copy(), move))
        board.push(move)
    return choices


# ---------------------------------------------------------------------------
# Legality
# ---------------------------------------------------------------------------


class TestLegality:

    @pytest.mark.parametrize("persona", PERSONA_IDS)
    def test_every_choice_is_legal(self, persona):
        for seed in range(3):
            for board, move in _play_out(persona, seed):
                assert move in board.legal_moves

    @pytest.mark.parametrize("persona", PERSONA_IDS)
    def test_none_on_checkmate(self, persona):
        board = chess.Board(_FOOLS_MATE_FEN)
        assert board.is_checkmate()
        assert select_move(board, persona, random.Random(0)) is None

    @pytest.mark.parametrize("persona", PERSONA_IDS)
    def test_none_on_stalemate(self, persona):
        board = chess.Board(_STALEMATE_FEN)
        assert board.is_stalemate()
        assert select_move(board, persona, random.Random(0)) is None

    def test_none_on_insufficient_material(self):
        board = chess.Board("8/8/4k3/8/8/4K3/8/8 w - - 0 1")
        assert select_move(board, "balanced", random.Random(0)) is None

    def test_none_on_threefold_repetition(self):
        board = chess.Board()
        for san in ("Nf3", "Nf6", "Ng1", "Ng8") * 2:
            board.push_san(san)
        assert board.can_claim_threefold_repetition()
        assert select_move(board, "balanced", random.Random(0)) is None

    def test_none_under_fifty_move_rule(self):
        board = chess.Board("4k3/8/8/8/8/8/8/R3K3 w - - 100 80")
        assert select_move(board, "tactical", random.Random(0)) is None

    def test_unknown_persona_rejected(self):
        with pytest.raises(ValueError, match="Unknown persona"):
            select_move(chess.Board(), "grandmaster")

    def test_board_not_modified(self):
        board = chess.Board()
        fen = board.fen()
        select_move(board, "tactical", random.Random(1))
        rank_moves(board, "casual", random.Random(1))
        assert board.fen() == fen


# ---------------------------------------------------------------------------
# Persona behaviour
# ---------------------------------------------------------------------------


class TestPersonaBehaviour:

    @pytest.mark.parametrize("persona", ["tactical", "balanced"])
    def test_finds_mate_in_one(self, persona):
        board = chess.Board(_BACK_RANK_FEN)
        for seed in range(10):
            move = select_move(board, persona, random.Random(seed))
            assert board.san(move) == "Rd8#"

    @pytest.mark.parametrize("persona", ["tactical", "balanced"])
    def test_takes_free_queen(self, persona):
        board = chess.Board(_FREE_QUEEN_FEN)
        for seed in range(10):
            move = select_move(board, persona, random.Random(seed))
            assert board.san(move) == "Rxd5"

    def test_casual_varies_in_opening(self):
        board = chess.Board()
        picks = {select_move(board, "casual", random.Random(seed)) for seed in range(20)}
        assert len(picks) >= 3

    def test_casual_noisier_than_tactical(self):
        assert PERSONA_WEIGHTS["casual"].noise > PERSONA_WEIGHTS["balanced"].noise
        assert PERSONA_WEIGHTS["balanced"].noise > PERSONA_WEIGHTS["tactical"].noise

    def test_ranking_sorted_best_first(self):
        ranked = rank_moves(chess.Board(_FREE_QUEEN_FEN), "balanced", random.Random(3))
        scores = [c.score for c in ranked]
        assert scores == sorted(scores, reverse=True)
        assert ranked[0].san == "Rxd5"
        assert ranked[0].captured_value == 9


# ---------------------------------------------------------------------------
# Determinism
# ---------------------------------------------------------------------------


class TestDeterminism:

    @pytest.mark.parametrize("persona", PERSONA_IDS)
    def test_same_seed_same_game(self, persona):
        first = [m for _, m in _play_out(persona, seed=42, plies=20)]
        second = [m for _, m in _play_out(persona, seed=42, plies=20)]
        assert first == second


# ---------------------------------------------------------------------------
# ArenaEngine wrapper
# ---------------------------------------------------------------------------


class TestArenaEngine:

    def test_default_persona(self):
        assert ArenaEngine().persona == "balanced"

    def test_invalid_persona(self):
        with pytest.raises(ValueError):
            ArenaEngine("grandmaster")

    def test_new_game_switches_persona(self):
        engine = ArenaEngine("casual", random.Random(0))
        board = engine.new_game(persona="tactical")
        assert engine.persona == "tactical"
        assert board.fen() == chess.STARTING_FEN

    def test_new_game_from_fen(self):
        board = ArenaEngine().new_game(starting_fen=_BACK_RANK_FEN)
        assert board.fen() == _BACK_RANK_FEN

    def test_get_engine_move_legal(self):
        engine = ArenaEngine("tactical", random.Random(5))
        board = chess.Board(_BACK_RANK_FEN)
        assert engine.get_engine_move(board) == chess.Move.from_uci("d1d8")

    def test_get_engine_move_game_over(self):
        with pytest.raises(ValueError, match="already over"):
            ArenaEngine().get_engine_move(chess.Board(_FOOLS_MATE_FEN))

    def test_exhaustion_raises(self):
        engine = ArenaEngine(rng=random.Random(0))
        with patch("arena.engine.select_move", return_value=None):
            with pytest.raises(EngineExhaustedError):
                engine.get_engine_move(chess.Board())


# ---------------------------------------------------------------------------
# Move parsing and CLI
# ---------------------------------------------------------------------------

_PROMOTION_FEN = "8/4P3/8/8/8/8/k7/4K3 w - - 0 1"


class TestParseMove:

    def test_san_and_uci(self):
        board = chess.Board()
        assert parse_move(board, "Nf3") == chess.Move.from_uci("g1f3")
        assert parse_move(board, " e2e4 ") == chess.Move.from_uci("e2e4")

    def test_illegal_or_malformed(self):
        board = chess.Board()
        assert parse_move(board, "e2e5") is None
        assert parse_move(board, "Ke2") is None
        assert parse_move(board, "zz") is None

    def test_uci_promotion_defaults_to_queen(self):
        board = chess.Board(_PROMOTION_FEN)
        assert parse_move(board, "e7e8") == chess.Move.from_uci("e7e8q")

    def test_uci_underpromotion_kept(self):
        board = chess.Board(_PROMOTION_FEN)
        assert parse_move(board, "e7e8n") == chess.Move.from_uci("e7e8n")


class TestCliMove:

    def test_unseeded_run_reports_reusable_seed(self, capsys):
        _cli_move(chess.STARTING_FEN, "casual", 5, None)
        first = json.loads(capsys.readouterr().out)
        assert isinstance(first["seed"], int)

        _cli_move(chess.STARTING_FEN, "casual", 5, first["seed"])
        second = json.loads(capsys.readouterr().out)
        assert second == first

    def test_choice_is_among_ranked_candidates(self, capsys):
        _cli_move(_BACK_RANK_FEN, "tactical", 3, None)
        payload = json.loads(capsys.readouterr().out)
        assert payload["move"] == "Rd8#"
        assert payload["candidates"][0]["san"] == "Rd8#"
