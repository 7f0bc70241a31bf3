"""Persona-driven opponent for Chess Arena.

Scores every legal move with one-ply heuristics (see arena.features)
and picks among the best candidates at random. Provides:
- Three personas (casual, balanced, tactical) with distinct weights
- Persona-scaled randomization via an injectable random source
- A small wrapper class for game sessions
- CLI for inspecting choices and playing a demo game
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from dataclasses import dataclass

import chess

from arena.features import extract_features
from arena.models import PERSONA_IDS, CandidateMove

logger = logging.getLogger(__name__)

_MATE_SCORE = 1000.0


class EngineExhaustedError(RuntimeError):
    """The engine found no move in a position the caller believed was live.

    This means terminal-state detection and move generation disagree; it
    is an internal consistency failure, never a user error.
    """


@dataclass(frozen=True)
class PersonaWeights:
    """Scoring weights for one persona.

    ``forcing_relief`` is the fraction of the hanging penalty forgiven
    when the move gives check or forks. ``noise`` is the upper bound of
    the uniform jitter added to each score; candidates within
    ``epsilon`` of the best are treated as tied.
    """

    material: float
    check: float
    mate: float
    hanging: float
    forcing_relief: float
    development: float
    king_safety: float
    noise: float
    epsilon: float


PERSONA_WEIGHTS: dict[str, PersonaWeights] = {
    "tactical": PersonaWeights(
        material=1.0, check=1.5, mate=_MATE_SCORE, hanging=0.6,
        forcing_relief=0.5, development=0.3, king_safety=0.3,
        noise=0.15, epsilon=0.05,
    ),
    "balanced": PersonaWeights(
        material=1.0, check=0.3, mate=_MATE_SCORE, hanging=1.4,
        forcing_relief=0.0, development=0.8, king_safety=0.6,
        noise=0.4, epsilon=0.1,
    ),
    "casual": PersonaWeights(
        material=0.35, check=0.1, mate=2.0, hanging=0.15,
        forcing_relief=0.0, development=0.1, king_safety=0.0,
        noise=3.0, epsilon=0.5,
    ),
}

_default_rng = random.Random()


def _weights_for(persona: str) -> PersonaWeights:
    try:
        return PERSONA_WEIGHTS[persona]
    except KeyError:
        raise ValueError(
            f"Unknown persona {persona!r}; expected one of {PERSONA_IDS}"
        ) from None


def score_candidate(candidate: CandidateMove, weights: PersonaWeights) -> float:
    """Weighted sum of a candidate's features, without jitter."""
    gained = candidate.material_delta + candidate.hanging_loss
    penalty = weights.hanging * candidate.hanging_loss
    if candidate.is_forcing:
        penalty *= 1.0 - weights.forcing_relief
    score = weights.material * gained - penalty
    if candidate.gives_check:
        score += weights.check
    if candidate.is_mate:
        score += weights.mate
    score += weights.development * candidate.development
    score += weights.king_safety * candidate.king_safety
    return score


def rank_moves(
    board: chess.Board,
    persona: str,
    rng: random.Random | None = None,
) -> list[CandidateMove]:
    """Score all legal moves for ``persona``, best first.

    Args:
        board: Position to move in (not modified).
        persona: One of ``casual``, ``balanced``, ``tactical``.
        rng: Random source for the jitter. Defaults to a shared
            unseeded generator.

    Returns:
        Candidates sorted by descending score; empty if no legal move.

    Raises:
        ValueError: If the persona is unknown.
    """
    weights = _weights_for(persona)
    rng = rng or _default_rng

    candidates: list[CandidateMove] = []
    for move in board.legal_moves:
        candidate = extract_features(board, move)
        candidate.score = score_candidate(candidate, weights) + rng.uniform(0.0, weights.noise)
        candidates.append(candidate)

    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def select_move(
    board: chess.Board,
    persona: str,
    rng: random.Random | None = None,
) -> chess.Move | None:
    """Pick the persona's move in ``board``.

    Returns None when the game is over or no legal move exists, instead
    of raising. Candidates scoring within the persona's epsilon of the
    best are tied and one of them is chosen uniformly.
    """
    if board.is_game_over(claim_draw=True):
        return None

    weights = _weights_for(persona)
    rng = rng or _default_rng
    candidates = rank_moves(board, persona, rng)
    if not candidates:
        return None

    best = candidates[0].score
    tied = [c for c in candidates if c.score >= best - weights.epsilon]
    choice = rng.choice(tied)
    logger.debug(
        "%s picked %s from %d tied of %d candidates",
        persona, choice.san, len(tied), len(candidates),
    )
    return choice.move


class ArenaEngine:
    """Opponent bound to a persona and a random source."""

    def __init__(self, persona: str = "balanced", rng: random.Random | None = None) -> None:
        """Initialize the engine.

        Args:
            persona: Persona id used for move selection.
            rng: Random source; pass a seeded ``random.Random`` for
                reproducible play.

        Raises:
            ValueError: If the persona is unknown.
        """
        self._rng = rng or random.Random()
        self._persona = "balanced"
        self.set_persona(persona)

    @property
    def persona(self) -> str:
        return self._persona

    def set_persona(self, persona: str) -> None:
        _weights_for(persona)
        self._persona = persona

    def new_game(self, persona: str | None = None, starting_fen: str | None = None) -> chess.Board:
        """Start a new game, optionally switching persona.

        Returns:
            A fresh chess.Board (from ``starting_fen`` if given).
        """
        if persona is not None:
            self.set_persona(persona)
        if starting_fen is not None:
            return chess.Board(starting_fen)
        return chess.Board()

    def get_engine_move(self, board: chess.Board) -> chess.Move:
        """Return the persona's move.

        Raises:
            ValueError: If the game is already over.
            EngineExhaustedError: If no move is produced for a live position.
        """
        if board.is_game_over(claim_draw=True):
            raise ValueError("Game is already over")
        move = select_move(board, self._persona, self._rng)
        if move is None:
            raise EngineExhaustedError(f"No move found for live position {board.fen()}")
        return move

    def rank_moves(self, board: chess.Board) -> list[CandidateMove]:
        return rank_moves(board, self._persona, self._rng)


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def _cli_move(fen: str, persona: str, top: int, seed: int | None) -> None:
    """Print the persona's choice and its top candidates as JSON."""
    board = chess.Board(fen)
    if seed is None:
        seed = random.SystemRandom().randrange(2**32)
    # Same seed for both calls so the listed scores match the choice
    ranked = rank_moves(board, persona, random.Random(seed))
    move = select_move(board, persona, random.Random(seed))
    payload = {
        "fen": fen,
        "persona": persona,
        "seed": seed,
        "move": board.san(move) if move is not None else None,
        "candidates": [
            {
                "san": c.san,
                "score": round(c.score, 3),
                "captured_value": c.captured_value,
                "gives_check": c.gives_check,
                "hanging_loss": c.hanging_loss,
            }
            for c in ranked[:top]
        ],
    }
    print(json.dumps(payload, indent=2))


def _cli_play(persona: str, play_black: bool) -> None:
    """Interactive game against a persona on the terminal."""
    engine = ArenaEngine(persona)
    board = engine.new_game()
    player = chess.BLACK if play_black else chess.WHITE
    print(f"New game against {persona} persona")
    print(board)
    print()

    while not board.is_game_over(claim_draw=True):
        if board.turn == player:
            print("Your move (SAN or UCI, 'q' to quit): ", end="")
            user_input = input().strip()
            if user_input.lower() == "q":
                print("Game ended by user.")
                return
            try:
                move = board.parse_san(user_input)
            except ValueError:
                try:
                    move = chess.Move.from_uci(user_input)
                except ValueError:
                    print("Invalid move format. Use SAN (e.g., e4) or UCI (e.g., e2e4).")
                    continue
                if move not in board.legal_moves:
                    print("Illegal move. Try again.")
                    continue
            print(f"You played: {board.san(move)}")
            board.push(move)
        else:
            move = engine.get_engine_move(board)
            print(f"Engine plays: {board.san(move)}")
            board.push(move)
        print(board)
        print()

    print(f"Game over: {board.result(claim_draw=True)}")


def main() -> None:
    """CLI entry point for engine.py."""
    parser = argparse.ArgumentParser(
        description="Persona engine - inspect move choices or play a demo game"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    move_parser = subparsers.add_parser("move", help="Pick a move for a FEN position")
    move_parser.add_argument("fen", type=str, help="FEN string of the position")
    move_parser.add_argument("--persona", choices=PERSONA_IDS, default="balanced")
    move_parser.add_argument("--top", type=int, default=5, help="Candidates to list")
    move_parser.add_argument("--seed", type=int, default=None, help="Random seed")

    play_parser = subparsers.add_parser("play", help="Play against a persona")
    play_parser.add_argument("--persona", choices=PERSONA_IDS, default="balanced")
    play_parser.add_argument("--black", action="store_true", help="Play the black pieces")

    args = parser.parse_args()

    if args.command == "move":
        _cli_move(args.fen, args.persona, args.top, args.seed)
    elif args.command == "play":
        _cli_play(args.persona, args.black)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
