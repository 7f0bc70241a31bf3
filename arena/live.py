"""Real-time games against a persona with chess clocks.

The player's move is applied immediately; the engine answers after a
short deferred delay. Clocks run on a one-second tick scheduled through
the ReplyScheduler, and a flag fall ends the game inside the tick that
empties the clock.
"""

from __future__ import annotations

import logging
import random
import threading
import uuid

import chess

from arena.config import Settings
from arena.daily import game_result
from arena.engine import EngineExhaustedError, select_move
from arena.models import (
    LIVE_OPPONENTS,
    GameRecord,
    clamp,
    color_name,
    find_persona,
    find_time_control,
    parse_color,
    parse_move,
    utc_now_iso,
)
from arena.progress import ProgressStore, score_for
from arena.scheduler import ReplyScheduler

logger = logging.getLogger(__name__)


def format_clock(seconds: int) -> str:
    """Render seconds as ``MM:SS``."""
    seconds = max(0, seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def live_accuracy(score: float, total_moves: int) -> int:
    """Accuracy estimate for a finished live game."""
    return int(clamp(round(82 + (score - 0.5) * 28 - max(0, total_moves - 40) * 0.8), 55, 98))


class LiveGame:
    """One live game session: board, clocks and the deferred engine."""

    def __init__(
        self,
        store: ProgressStore,
        scheduler: ReplyScheduler,
        persona_id: str = "balanced",
        time_control: str = "10+0",
        player_color: str = "white",
        rng: random.Random | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Configure a session; call ``start()`` to begin play.

        Raises:
            ValueError: If the persona, time control or color is unknown.
        """
        self._store = store
        self._scheduler = scheduler
        self._rng = rng or random.Random()
        self._settings = settings or Settings.from_env()
        self._lock = threading.RLock()

        self._persona = find_persona(persona_id, LIVE_OPPONENTS)
        self._time_control = find_time_control(time_control)
        self._player = parse_color(player_color)
        self._game_id = ""
        self.reset()

    # -- read accessors ------------------------------------------------------

    @property
    def game_id(self) -> str:
        return self._game_id

    @property
    def persona(self) -> str:
        return self._persona.id

    @property
    def player_color(self) -> str:
        return color_name(self._player)

    @property
    def fen(self) -> str:
        with self._lock:
            return self._board.fen()

    @property
    def move_list(self) -> list[str]:
        with self._lock:
            return list(self._moves)

    @property
    def timers(self) -> dict[str, int]:
        with self._lock:
            return dict(self._timers)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def result(self) -> str | None:
        return self._result

    @property
    def status(self) -> str:
        return self._status

    @property
    def elapsed(self) -> int:
        return self._elapsed

    @property
    def record(self) -> GameRecord | None:
        """The GameRecord archived when the game ended, if it has."""
        return self._record

    @property
    def reply_pending(self) -> bool:
        return self._scheduler.is_pending(self._reply_key)

    @property
    def _reply_key(self) -> str:
        return f"{self._game_id}:reply"

    @property
    def _clock_key(self) -> str:
        return f"{self._game_id}:clock"

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "game_id": self._game_id,
                "opponent": self._persona.label,
                "persona": self._persona.id,
                "time_control": self._time_control.id,
                "player_color": self.player_color,
                "fen": self._board.fen(),
                "moves": list(self._moves),
                "turn": color_name(self._board.turn),
                "timers": dict(self._timers),
                "clocks": {side: format_clock(left) for side, left in self._timers.items()},
                "active": self._active,
                "reply_pending": self.reply_pending,
                "result": self._result,
                "status": self._status,
                "elapsed": self._elapsed,
            }

    # -- lifecycle -----------------------------------------------------------

    def reset(self, status: str = "New game ready.") -> None:
        """Abandon the current game and prepare a fresh, inactive one."""
        with self._lock:
            if self._game_id:
                self._scheduler.cancel(self._reply_key)
                self._scheduler.cancel(self._clock_key)
            self._game_id = f"live-{uuid.uuid4().hex[:12]}"
            self._board = chess.Board()
            self._moves: list[str] = []
            base = self._time_control.base_seconds
            self._timers = {"white": base, "black": base}
            self._active = False
            self._result: str | None = None
            self._status = status
            self._started_at: str | None = None
            self._elapsed = 0
            self._record: GameRecord | None = None

    def configure(
        self,
        persona_id: str | None = None,
        time_control: str | None = None,
        player_color: str | None = None,
    ) -> None:
        """Change the match settings. Any game in progress is abandoned.

        Raises:
            ValueError: If a value is unknown.
        """
        persona = find_persona(persona_id, LIVE_OPPONENTS) if persona_id else self._persona
        control = find_time_control(time_control) if time_control else self._time_control
        player = parse_color(player_color) if player_color else self._player
        with self._lock:
            self._persona, self._time_control, self._player = persona, control, player
            self.reset("Configuration updated.")

    def start(self) -> str:
        """Begin a new game and return its id.

        When the player takes Black the engine's first move is scheduled.
        """
        with self._lock:
            self.reset()
            self._active = True
            self._started_at = utc_now_iso()
            self._status = "Game in progress. Make your first move."
            if self._player == chess.BLACK:
                self._schedule_reply(self._settings.live_opening_delay)
        logger.info(
            "Live game %s started vs %s (%s) as %s",
            self._game_id, self._persona.label, self._time_control.id, self.player_color,
        )
        return self._game_id

    def start_clock(self) -> None:
        """Run ``tick()`` once per clock interval until the game ends."""
        game_id = self._game_id
        self._scheduler.schedule(
            self._clock_key,
            self._settings.clock_interval,
            lambda: self._clock_tick(game_id),
        )

    def _clock_tick(self, game_id: str) -> None:
        with self._lock:
            if game_id != self._game_id:
                return
            if self.tick() and self._active:
                self.start_clock()

    # -- moves and clocks ----------------------------------------------------

    def submit_move(self, move: str) -> bool:
        """Play the player's move (SAN or UCI).

        Returns:
            False without changing anything if the game is not running,
            it is not the player's turn, the engine reply is pending or
            the move is illegal.
        """
        with self._lock:
            if not self._active or self._result is not None:
                return False
            if self._board.turn != self._player or self.reply_pending:
                return False

            chess_move = parse_move(self._board, move)
            if chess_move is None:
                return False

            self._push(chess_move)
            if self._board.is_game_over(claim_draw=True):
                self._handle_game_over()
            else:
                self._schedule_reply(self._settings.live_reply_delay)
            return True

    def tick(self) -> bool:
        """Take one second off the side to move's clock.

        A clock reaching zero ends the game on time in the same call.

        Returns:
            True if the tick was applied, False if the game is not running.
        """
        with self._lock:
            if not self._active or self._result is not None:
                return False
            side = color_name(self._board.turn)
            self._timers[side] = max(0, self._timers[side] - 1)
            self._elapsed += 1
            if self._timers[side] == 0:
                self._conclude(color_name(not self._board.turn), "Time has expired.")
            return True

    def _push(self, move: chess.Move) -> None:
        mover = color_name(self._board.turn)
        self._moves.append(self._board.san(move))
        self._board.push(move)
        if self._time_control.increment:
            self._timers[mover] += self._time_control.increment

    def _schedule_reply(self, delay: float) -> None:
        game_id = self._game_id
        expected_ply = len(self._moves)
        self._scheduler.schedule(
            self._reply_key,
            self._settings.delay(delay),
            lambda: self._engine_reply(game_id, expected_ply),
        )

    def _engine_reply(self, game_id: str, expected_ply: int) -> None:
        """Play the persona's move unless the game moved on meanwhile.

        Raises:
            EngineExhaustedError: If no move is found in a live position.
        """
        with self._lock:
            if game_id != self._game_id or not self._active or self._result is not None:
                logger.debug("Discarding stale reply for %s", game_id)
                return
            if len(self._moves) != expected_ply or self._board.turn == self._player:
                logger.debug("Discarding out-of-turn reply for %s", game_id)
                return

            move = select_move(self._board, self._persona.id, self._rng)
            if move is None:
                raise EngineExhaustedError(
                    f"{self._persona.id} found no move in live position {self._board.fen()}"
                )
            self._push(move)
            if self._board.is_game_over(claim_draw=True):
                self._handle_game_over()

    def _handle_game_over(self) -> None:
        result = game_result(self._board)
        reason = "Checkmate on the board." if result != "draw" else "Game drawn by rule."
        self._conclude(result, reason)

    def _conclude(self, result: str, reason: str) -> None:
        self._active = False
        self._result = result
        self._status = reason
        self._scheduler.cancel(self._reply_key)
        self._scheduler.cancel(self._clock_key)

        score = score_for(result, self.player_color)
        self._record = self._store.record_game(GameRecord(
            id=self._game_id,
            mode="live",
            opponent=self._persona.label,
            moves=tuple(self._moves),
            started_at=self._started_at or utc_now_iso(),
            finished_at=utc_now_iso(),
            result=result,
            player_color=self.player_color,
            accuracy=live_accuracy(score, len(self._moves)),
            duration_seconds=self._elapsed,
            tags=("live", self._persona.id),
        ))
        logger.info("Live game %s over: %s (%s)", self._game_id, result, reason)
