"""Per-move feature extraction for the opponent move selector.

Every feature looks at most one ply ahead: the position before the
move and the position right after it. Nothing here searches.
"""

from __future__ import annotations

import chess

from arena.models import CandidateMove

# Piece values for material accounting. The king is never captured, but
# as an attacker it only takes undefended pieces, hence the large value.
_PIECE_VALUES: dict[int, int] = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 100,
}

_CENTER_SQUARES = (chess.D4, chess.E4, chess.D5, chess.E5)
_MINOR_PIECES = (chess.KNIGHT, chess.BISHOP)


def piece_value(piece_type: int | None) -> int:
    """Return the material value for a piece type (0 for None)."""
    if piece_type is None:
        return 0
    return _PIECE_VALUES.get(piece_type, 0)


def captured_value(board: chess.Board, move: chess.Move) -> int:
    """Material captured by ``move`` in ``board`` (en passant counts as a pawn)."""
    if board.is_en_passant(move):
        return _PIECE_VALUES[chess.PAWN]
    if not board.is_capture(move):
        return 0
    return piece_value(board.piece_type_at(move.to_square))


def promotion_gain(move: chess.Move) -> int:
    if move.promotion is None:
        return 0
    return piece_value(move.promotion) - _PIECE_VALUES[chess.PAWN]


def hanging_loss(board: chess.Board, color: chess.Color) -> int:
    """Worst single-capture loss ``color`` is exposed to in ``board``.

    A piece is loose when it is attacked and either undefended or
    attacked by something cheaper than itself. Kings are ignored.
    """
    worst = 0
    for square, piece in board.piece_map().items():
        if piece.color != color or piece.piece_type == chess.KING:
            continue
        attackers = board.attackers(not color, square)
        if not attackers:
            continue
        value = piece_value(piece.piece_type)
        cheapest = min(piece_value(board.piece_type_at(sq)) for sq in attackers)
        if not board.attackers(color, square):
            loss = value
        elif cheapest < value:
            loss = value - cheapest
        else:
            continue
        worst = max(worst, loss)
    return worst


def is_fork(board: chess.Board, square: chess.Square) -> bool:
    """True if the piece on ``square`` attacks two or more enemy pieces
    worth at least a minor piece (the king included)."""
    piece = board.piece_at(square)
    if piece is None:
        return False
    targets = 0
    for sq in board.attacks(square):
        victim = board.piece_at(sq)
        if victim is not None and victim.color != piece.color:
            if piece_value(victim.piece_type) >= 3:
                targets += 1
    return targets >= 2


def development_score(board: chess.Board, move: chess.Move) -> float:
    """Opening-principle bonus: castle, develop minors, take the center."""
    if board.is_castling(move):
        return 1.0
    piece_type = board.piece_type_at(move.from_square)
    back_rank = 0 if board.turn == chess.WHITE else 7
    score = 0.0
    if piece_type in _MINOR_PIECES and chess.square_rank(move.from_square) == back_rank:
        score += 0.6
    if piece_type == chess.PAWN and move.to_square in _CENTER_SQUARES:
        score += 0.5
    # Early queen sorties
    if piece_type == chess.QUEEN and board.fullmove_number <= 10:
        score -= 0.3
    return score


def king_safety_score(board: chess.Board, move: chess.Move) -> float:
    if board.is_castling(move):
        return 1.0
    if board.piece_type_at(move.from_square) != chess.KING:
        return 0.0
    # Walking the king while queens remain is risky
    if board.pieces(chess.QUEEN, chess.WHITE) or board.pieces(chess.QUEEN, chess.BLACK):
        return -0.8
    return 0.0


def extract_features(board: chess.Board, move: chess.Move) -> CandidateMove:
    """Build a CandidateMove for a legal ``move``. ``board`` is not modified.

    Args:
        board: Position before the move.
        move: A legal move in that position.

    Returns:
        CandidateMove with all features filled in and ``score`` left at 0.
    """
    mover = board.turn
    san = board.san(move)
    gained = captured_value(board, move)
    gives_check = board.gives_check(move)

    board_after = board.copy(stack=False)
    board_after.push(move)

    loss = hanging_loss(board_after, mover)
    return CandidateMove(
        move=move,
        san=san,
        captured_value=gained,
        gives_check=gives_check,
        is_mate=board_after.is_checkmate(),
        material_delta=gained + promotion_gain(move) - loss,
        hanging_loss=loss,
        is_forcing=gives_check or is_fork(board_after, move.to_square),
        development=development_score(board, move),
        king_safety=king_safety_score(board, move),
    )
