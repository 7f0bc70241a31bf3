"""Correspondence (daily) games against a persona.

A daily game alternates between waiting for the player and waiting for
a deferred engine reply. Positions are rebuilt from the stored SAN move
list so repetition and fifty-move draws are detected across sessions.
"""

from __future__ import annotations

import enum
import logging
import random
import threading
import uuid

import chess

from arena.config import Settings
from arena.engine import EngineExhaustedError, select_move
from arena.models import (
    DAILY_OPPONENTS,
    DailyGame,
    GameRecord,
    clamp,
    color_code,
    color_name,
    find_persona,
    parse_color,
    parse_move,
    utc_now_iso,
)
from arena.progress import ProgressStore
from arena.scheduler import ReplyScheduler

logger = logging.getLogger(__name__)

TITLE_PREFIX = "Daily Clash"
SECONDS_PER_MOVE = 45


class DailyState(enum.Enum):
    AWAITING_PLAYER_MOVE = "awaiting_player_move"
    AWAITING_ENGINE_REPLY = "awaiting_engine_reply"


def daily_accuracy(result: str, player_color: str, total_moves: int) -> int:
    """Accuracy estimate for a finished daily game."""
    if result == "draw":
        bonus = 0
    elif result == player_color:
        bonus = 10
    else:
        bonus = -8
    return int(clamp(round(80 + bonus - total_moves * 0.4), 58, 99))


def board_for(game: DailyGame) -> chess.Board:
    """Rebuild a daily game's board by replaying its moves."""
    board = chess.Board()
    for san in game.moves:
        board.push_san(san)
    return board


def game_result(board: chess.Board) -> str:
    """Result of a finished position: the mating side, or a draw."""
    if board.is_checkmate():
        return color_name(not board.turn)
    return "draw"


class DailyGameCoordinator:
    """Creates daily games, validates player moves and schedules replies."""

    def __init__(
        self,
        store: ProgressStore,
        scheduler: ReplyScheduler,
        rng: random.Random | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._rng = rng or random.Random()
        self._settings = settings or Settings.from_env()
        self._lock = threading.RLock()
        self.resume_pending()

    @property
    def games(self) -> list[DailyGame]:
        return self._store.daily_games

    def state(self, game_id: str) -> DailyState | None:
        """Current phase of an active game, or None if it is not active."""
        game = self._store.get_daily_game(game_id)
        if game is None:
            return None
        if game.is_player_turn and not self._scheduler.is_pending(game_id):
            return DailyState.AWAITING_PLAYER_MOVE
        return DailyState.AWAITING_ENGINE_REPLY

    def create_game(
        self,
        persona_id: str = "balanced",
        player_color: str = "white",
        title: str | None = None,
        reminders: bool = True,
    ) -> DailyGame:
        """Start a daily game at the initial position.

        When the player takes Black the engine's first move is scheduled
        right away.

        Raises:
            ValueError: If the persona or color is unknown.
        """
        persona = find_persona(persona_id, DAILY_OPPONENTS)
        parse_color(player_color)

        with self._lock:
            number = len(self._store.daily_games) + 1
            game = DailyGame(
                id=f"daily-{uuid.uuid4().hex[:12]}",
                title=title or f"{TITLE_PREFIX} #{number}",
                opponent=persona.label,
                persona=persona.id,
                player_color=player_color,
                reminders_enabled=reminders,
            )
            self._store.upsert_daily_game(game)
            if player_color == "black":
                self._schedule_reply(game, self._settings.daily_opening_delay)

        logger.info("Created %s vs %s as %s", game.id, persona.label, player_color)
        return game

    def submit_move(self, game_id: str, move: str) -> bool:
        """Play the player's move (SAN or UCI) in an active game.

        Returns:
            False without changing anything if the game is unknown, it is
            not the player's turn, a reply is still pending or the move is
            illegal. True once the move is stored.
        """
        with self._lock:
            game = self._store.get_daily_game(game_id)
            if game is None or not game.is_player_turn:
                return False
            if self._scheduler.is_pending(game_id):
                return False

            board = board_for(game)
            chess_move = parse_move(board, move)
            if chess_move is None:
                return False

            san = board.san(chess_move)
            board.push(chess_move)
            logger.debug("%s: player played %s", game_id, san)
            updated = self._advance(game, board, [*game.moves, san])
            if isinstance(updated, DailyGame):
                self._schedule_reply(updated, self._settings.daily_reply_delay)
            return True

    def set_reminders(self, game_id: str, enabled: bool) -> DailyGame | None:
        return self._store.update_daily_game(game_id, {"reminders_enabled": enabled})

    def resume_pending(self) -> list[str]:
        """Schedule replies owed by the engine in games loaded from disk.

        Returns:
            Ids of the games whose reply was scheduled.
        """
        resumed = []
        with self._lock:
            for game in self._store.daily_games:
                if game.is_player_turn or self._scheduler.is_pending(game.id):
                    continue
                delay = (
                    self._settings.daily_opening_delay if not game.moves
                    else self._settings.daily_reply_delay
                )
                self._schedule_reply(game, delay)
                resumed.append(game.id)
        if resumed:
            logger.info("Resumed engine replies for %d daily game(s)", len(resumed))
        return resumed

    def cancel_pending(self, game_id: str | None = None) -> None:
        """Drop the scheduled reply of one game, or of every active game."""
        if game_id is not None:
            self._scheduler.cancel(game_id)
            return
        for game in self._store.daily_games:
            self._scheduler.cancel(game.id)

    # -- engine side ---------------------------------------------------------

    def _schedule_reply(self, game: DailyGame, delay: float) -> None:
        expected_ply = len(game.moves)
        self._scheduler.schedule(
            game.id,
            self._settings.delay(delay),
            lambda: self._engine_reply(game.id, expected_ply),
        )

    def _engine_reply(self, game_id: str, expected_ply: int) -> None:
        """Play the persona's reply if the game is still where it was left.

        Raises:
            EngineExhaustedError: If no move is found in a live position.
        """
        with self._lock:
            game = self._store.get_daily_game(game_id)
            if game is None or len(game.moves) != expected_ply or game.is_player_turn:
                logger.debug("Discarding stale reply for %s", game_id)
                return

            board = board_for(game)
            if board.is_game_over(claim_draw=True):
                self._complete(game, board, list(game.moves))
                return

            move = select_move(board, game.persona, self._rng)
            if move is None:
                raise EngineExhaustedError(
                    f"{game.persona} found no reply in live position {board.fen()}"
                )
            san = board.san(move)
            board.push(move)
            logger.debug("%s: %s replied %s", game_id, game.persona, san)
            self._advance(game, board, [*game.moves, san])

    def _advance(
        self, game: DailyGame, board: chess.Board, moves: list[str]
    ) -> DailyGame | GameRecord | None:
        if board.is_game_over(claim_draw=True):
            return self._complete(game, board, moves)
        return self._store.update_daily_game(game.id, {
            "fen": board.fen(),
            "moves": moves,
            "color_to_move": color_code(board.turn),
            "last_updated": utc_now_iso(),
        })

    def _complete(self, game: DailyGame, board: chess.Board, moves: list[str]) -> GameRecord | None:
        self._scheduler.cancel(game.id)
        result = game_result(board)
        total_moves = len(moves)
        record = self._store.complete_daily_game(
            game.id,
            result=result,
            accuracy=daily_accuracy(result, game.player_color, total_moves),
            duration_seconds=total_moves * SECONDS_PER_MOVE,
            moves=moves,
        )
        logger.info("Daily game %s finished: %s after %d plies", game.id, result, total_moves)
        return record
