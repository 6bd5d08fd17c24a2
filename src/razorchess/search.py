"""In-process adversarial search.

Negamax with alpha-beta pruning over python-chess boards, a material +
piece-square-table evaluator and a mobility term. There is no
transposition table or quiescence search. Root moves with equal scores
keep generation order.
"""

from __future__ import annotations

import threading
import time

import chess

from razorchess.models import CandidateMove, PositionEvaluation

MATE_SCORE = 99_999
MAX_MATE_PLY = 256  # scores this close to MATE_SCORE are forced mates
MOBILITY_WEIGHT = 5

PIECE_VALUES = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}

# Piece-square tables from White's point of view, a1 = index 0.
# Black looks up the vertically mirrored square.

PST_PAWN = [
     0,  0,  0,  0,  0,  0,  0,  0,
     5, 10, 10,-20,-20, 10, 10,  5,
     5, -5,-10,  0,  0,-10, -5,  5,
     0,  0,  0, 20, 20,  0,  0,  0,
     5,  5, 10, 25, 25, 10,  5,  5,
    10, 10, 20, 30, 30, 20, 10, 10,
    50, 50, 50, 50, 50, 50, 50, 50,
     0,  0,  0,  0,  0,  0,  0,  0,
]

PST_KNIGHT = [
    -50,-40,-30,-30,-30,-30,-40,-50,
    -40,-20,  0,  5,  5,  0,-20,-40,
    -30,  5, 10, 15, 15, 10,  5,-30,
    -30,  0, 15, 20, 20, 15,  0,-30,
    -30,  5, 15, 20, 20, 15,  5,-30,
    -30,  0, 10, 15, 15, 10,  0,-30,
    -40,-20,  0,  0,  0,  0,-20,-40,
    -50,-40,-30,-30,-30,-30,-40,-50,
]

PST_BISHOP = [
    -20,-10,-10,-10,-10,-10,-10,-20,
    -10,  5,  0,  0,  0,  0,  5,-10,
    -10, 10, 10, 10, 10, 10, 10,-10,
    -10,  0, 10, 10, 10, 10,  0,-10,
    -10,  5,  5, 10, 10,  5,  5,-10,
    -10,  0,  5, 10, 10,  5,  0,-10,
    -10,  0,  0,  0,  0,  0,  0,-10,
    -20,-10,-10,-10,-10,-10,-10,-20,
]

PST_ROOK = [
     0,  0,  0,  5,  5,  0,  0,  0,
    -5,  0,  0,  0,  0,  0,  0, -5,
    -5,  0,  0,  0,  0,  0,  0, -5,
    -5,  0,  0,  0,  0,  0,  0, -5,
    -5,  0,  0,  0,  0,  0,  0, -5,
    -5,  0,  0,  0,  0,  0,  0, -5,
     5, 10, 10, 10, 10, 10, 10,  5,
     0,  0,  0,  0,  0,  0,  0,  0,
]

PST_QUEEN = [
    -20,-10,-10, -5, -5,-10,-10,-20,
    -10,  0,  5,  0,  0,  0,  0,-10,
    -10,  5,  5,  5,  5,  5,  0,-10,
      0,  0,  5,  5,  5,  5,  0, -5,
     -5,  0,  5,  5,  5,  5,  0, -5,
    -10,  0,  5,  5,  5,  5,  0,-10,
    -10,  0,  0,  0,  0,  0,  0,-10,
    -20,-10,-10, -5, -5,-10,-10,-20,
]

PST_KING = [
     20, 30, 10,  0,  0, 10, 30, 20,
     20, 20,  0,  0,  0,  0, 20, 20,
    -10,-20,-20,-20,-20,-20,-20,-10,
    -20,-30,-30,-40,-40,-30,-30,-20,
    -30,-40,-40,-50,-50,-40,-40,-30,
    -30,-40,-40,-50,-50,-40,-40,-30,
    -30,-40,-40,-50,-50,-40,-40,-30,
    -30,-40,-40,-50,-50,-40,-40,-30,
]

PST = {
    chess.PAWN: PST_PAWN,
    chess.KNIGHT: PST_KNIGHT,
    chess.BISHOP: PST_BISHOP,
    chess.ROOK: PST_ROOK,
    chess.QUEEN: PST_QUEEN,
    chess.KING: PST_KING,
}


class SearchAborted(Exception):
    """Raised inside the tree walk when the time budget runs out."""


def _is_draw(board: chess.Board) -> bool:
    return board.is_stalemate() or board.is_insufficient_material() or board.is_fifty_moves()


def evaluate_board(board: chess.Board) -> int:
    """Static evaluation in centipawns from White's perspective.

    Checkmate scores MATE_SCORE for the side that is not to move; drawn
    terminals score 0.
    """
    if board.is_checkmate():
        return -MATE_SCORE if board.turn == chess.WHITE else MATE_SCORE
    if _is_draw(board):
        return 0

    score = 0
    for square, piece in board.piece_map().items():
        if piece.color == chess.WHITE:
            score += PIECE_VALUES[piece.piece_type] + PST[piece.piece_type][square]
        else:
            score -= PIECE_VALUES[piece.piece_type] + PST[piece.piece_type][chess.square_mirror(square)]

    mobility = board.legal_moves.count() * MOBILITY_WEIGHT
    score += mobility if board.turn == chess.WHITE else -mobility
    return score


def _capture_value(board: chess.Board, move: chess.Move) -> int:
    if not board.is_capture(move):
        return 0
    if board.is_en_passant(move):
        return PIECE_VALUES[chess.PAWN]
    captured = board.piece_at(move.to_square)
    return PIECE_VALUES[captured.piece_type] if captured else 0


def order_moves(board: chess.Board) -> list[chess.Move]:
    """Captures first, most valuable victim first; otherwise generation order."""
    return sorted(board.legal_moves, key=lambda m: -_capture_value(board, m))


class _Budget:
    def __init__(self, deadline: float | None, stop: threading.Event | None):
        self.deadline = deadline
        self.stop = stop

    def check(self) -> None:
        if self.stop is not None and self.stop.is_set():
            raise SearchAborted
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise SearchAborted


def _negamax(board: chess.Board, depth: int, alpha: int, beta: int, budget: _Budget, ply: int) -> int:
    """Score from the side to move's perspective.

    Being mated ``ply`` half-moves below the root scores
    ``-(MATE_SCORE - ply)``, so shorter mates rank higher.
    """
    budget.check()
    if board.is_checkmate():
        return -(MATE_SCORE - ply)
    if _is_draw(board):
        return 0
    if depth == 0:
        score = evaluate_board(board)
        return score if board.turn == chess.WHITE else -score

    best = -MATE_SCORE - 1
    for move in order_moves(board):
        board.push(move)
        try:
            score = -_negamax(board, depth - 1, -beta, -alpha, budget, ply + 1)
        finally:
            board.pop()
        if score > best:
            best = score
        if score > alpha:
            alpha = score
        if alpha >= beta:
            break
    return best


def _mate_moves(score: int) -> int | None:
    """Full moves to mate for a side-to-move search score, if it is one."""
    if abs(score) < MATE_SCORE - MAX_MATE_PLY:
        return None
    return (MATE_SCORE - abs(score) + 1) // 2


def _reported(score: int, sign: int) -> tuple[int, int | None]:
    """Convert a side-to-move score to White-relative (centipawns, mate).

    Mate in n maps to ``±(MATE_SCORE - n)`` with ``mate=±n``, positive when
    White delivers it.
    """
    moves = _mate_moves(score)
    if moves is None:
        return score * sign, None
    winner = sign if score > 0 else -sign
    return winner * (MATE_SCORE - moves), winner * moves


def search_position(
    board: chess.Board,
    depth: int,
    width: int,
    deadline: float | None = None,
    stop: threading.Event | None = None,
) -> PositionEvaluation:
    """Rank the root moves of ``board``.

    Every legal root move is scored with a full window so each candidate
    carries an exact value, then the list is sorted best-first for the side
    to move, truncated to ``width`` and converted to White's perspective.
    If the budget runs out the moves completed so far are returned.
    """
    fen = board.fen()
    board = board.copy(stack=False)
    depth = max(1, depth)

    if board.is_checkmate():
        return PositionEvaluation(fen=fen, candidates=[], evaluation=0, depth=0, mate=0)
    if board.is_game_over(claim_draw=False):
        return PositionEvaluation(fen=fen, candidates=[], evaluation=0, depth=0, mate=None)

    budget = _Budget(deadline, stop)
    scored: list[tuple[int, chess.Move]] = []
    try:
        for move in order_moves(board):
            board.push(move)
            try:
                score = -_negamax(board, depth - 1, -MATE_SCORE - 1, MATE_SCORE + 1, budget, 1)
            finally:
                board.pop()
            scored.append((score, move))
    except SearchAborted:
        if not scored:
            return PositionEvaluation(fen=fen, candidates=[], evaluation=0, depth=0, mate=None)

    scored.sort(key=lambda item: -item[0])
    sign = 1 if board.turn == chess.WHITE else -1
    candidates = [
        CandidateMove(
            uci=move.uci(),
            san=board.san(move),
            evaluation=_reported(score, sign)[0],
            depth=depth,
            is_pv=(i == 0),
        )
        for i, (score, move) in enumerate(scored[:max(1, width)])
    ]

    _, mate = _reported(scored[0][0], sign)

    return PositionEvaluation(
        fen=fen,
        candidates=candidates,
        evaluation=candidates[0].evaluation,
        depth=depth,
        mate=mate,
    )
