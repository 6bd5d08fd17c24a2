"""Move quality classification.

Grades a played move by comparing the best evaluation available before it
with the evaluation after it, both seen from the mover's side.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass

import chess

from razorchess.engine import EngineProtocol
from razorchess.models import PlayedMove
from razorchess.search import MATE_SCORE


class MoveQuality(enum.Enum):
    BRILLIANT = "brilliant"
    GOOD = "good"
    INACCURACY = "inaccuracy"
    MISTAKE = "mistake"
    BLUNDER = "blunder"


# Centipawn-loss thresholds (inclusive lower bounds).
BLUNDER_THRESHOLD = 300
MISTAKE_THRESHOLD = 100
INACCURACY_THRESHOLD = 50

BRILLIANT_MAX_LOSS = 5
# Fewer legal moves than this and "finding the best move" is no achievement.
BRILLIANT_MIN_ALTERNATIVES = 4

ANALYSIS_DEPTH = 16


@dataclass(frozen=True)
class MoveClassification:
    centipawn_loss: int
    is_blunder: bool = False
    is_mistake: bool = False
    is_inaccuracy: bool = False
    is_brilliant: bool = False

    @property
    def quality(self) -> MoveQuality:
        if self.is_blunder:
            return MoveQuality.BLUNDER
        if self.is_mistake:
            return MoveQuality.MISTAKE
        if self.is_inaccuracy:
            return MoveQuality.INACCURACY
        if self.is_brilliant:
            return MoveQuality.BRILLIANT
        return MoveQuality.GOOD


def _for_mover(evaluation: float, mover: chess.Color) -> float:
    return evaluation if mover == chess.WHITE else -evaluation


def classify_move(
    eval_before_best: float,
    eval_after_actual: float,
    mover: chess.Color,
    *,
    played_is_best: bool = False,
    legal_move_count: int = 0,
) -> MoveClassification:
    """Classify one move from White-relative before/after evaluations."""
    before = _for_mover(eval_before_best, mover)
    after = _for_mover(eval_after_actual, mover)
    cp_loss = round(abs(before - after))

    is_blunder = cp_loss >= BLUNDER_THRESHOLD
    is_mistake = not is_blunder and cp_loss >= MISTAKE_THRESHOLD
    is_inaccuracy = not is_blunder and not is_mistake and cp_loss >= INACCURACY_THRESHOLD
    is_brilliant = (
        cp_loss <= BRILLIANT_MAX_LOSS
        and played_is_best
        and legal_move_count >= BRILLIANT_MIN_ALTERNATIVES
    )
    return MoveClassification(
        centipawn_loss=cp_loss,
        is_blunder=is_blunder,
        is_mistake=is_mistake,
        is_inaccuracy=is_inaccuracy,
        is_brilliant=is_brilliant,
    )


async def analyze_player_move(
    engine: EngineProtocol,
    board_before: chess.Board,
    move: chess.Move,
    think_time: int = 0,
    depth: int = ANALYSIS_DEPTH,
) -> PlayedMove:
    """Evaluate and grade a human move. ``board_before`` is left untouched."""
    mover = board_before.turn
    san = board_before.san(move)
    legal_count = board_before.legal_moves.count()

    eval_before = await engine.evaluate(board_before.fen(), depth=depth, width=1)
    board_after = board_before.copy()
    board_after.push(move)
    eval_after = await engine.evaluate(board_after.fen(), depth=depth, width=1)
    after_value = eval_after.evaluation
    if board_after.is_checkmate():
        after_value = MATE_SCORE if mover == chess.WHITE else -MATE_SCORE

    best = eval_before.best
    result = classify_move(
        eval_before.evaluation,
        after_value,
        mover,
        played_is_best=best is not None and best.uci == move.uci(),
        legal_move_count=legal_count,
    )
    return PlayedMove(
        move_number=board_before.fullmove_number,
        san=san,
        uci=move.uci(),
        fen=board_after.fen(),
        evaluation=after_value,
        best_eval=eval_before.evaluation,
        centipawn_loss=result.centipawn_loss,
        is_blunder=result.is_blunder,
        is_mistake=result.is_mistake,
        is_inaccuracy=result.is_inaccuracy,
        is_brilliant=result.is_brilliant,
        timestamp=time.time(),
        think_time=think_time,
        is_player_move=True,
    )
