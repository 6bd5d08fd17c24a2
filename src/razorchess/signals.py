"""Game phase and tension estimates derived from the board and move history."""

from __future__ import annotations

from typing import Sequence

import chess

from razorchess.models import GamePhase, PlayedMove

OPENING_MAX_MOVE = 10
OPENING_MIN_PIECES = 28
ENDGAME_MAX_PIECES = 12
ENDGAME_MAX_MAJORS = 2

DEFAULT_TENSION = 5.0
TENSION_WINDOW = 6


def detect_game_phase(board: chess.Board) -> GamePhase:
    """Classify the position by move counter and remaining material.

    Opening: move <= 10 and at least 28 pieces (kings included) on the board.
    Endgame: 12 or fewer pieces, or at most two queens and rooks combined.
    Middlegame: everything else.
    """
    pieces = chess.popcount(board.occupied)
    majors = chess.popcount(board.queens | board.rooks)

    if board.fullmove_number <= OPENING_MAX_MOVE and pieces >= OPENING_MIN_PIECES:
        return GamePhase.OPENING
    if pieces <= ENDGAME_MAX_PIECES or majors <= ENDGAME_MAX_MAJORS:
        return GamePhase.ENDGAME
    return GamePhase.MIDDLEGAME


def calculate_tension(moves: Sequence[PlayedMove]) -> float:
    """Score in [0, 10] for how closely contested the game has been."""
    if len(moves) < 4:
        return DEFAULT_TENSION

    evals = [m.evaluation for m in moves]
    avg_abs = sum(abs(e) for e in evals) / len(evals)
    eval_tension = max(0.0, 10 - avg_abs / 50)

    lead_changes = sum(
        1 for prev, cur in zip(evals, evals[1:]) if (prev > 0) != (cur > 0)
    )
    change_tension = min(3.0, lead_changes * 0.5)

    recent = evals[-TENSION_WINDOW:]
    recent_abs = sum(abs(e) for e in recent) / len(recent)
    endgame_tension = max(0.0, 3 - recent_abs / 30)

    return min(10.0, max(0.0, eval_tension * 0.5 + change_tension + endgame_tension))
