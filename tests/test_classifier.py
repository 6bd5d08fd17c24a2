"""Tests for move quality classification."""

from unittest.mock import AsyncMock

import chess
import pytest

from razorchess.classifier import (
    MoveClassification,
    MoveQuality,
    analyze_player_move,
    classify_move,
)
from razorchess.models import CandidateMove, PositionEvaluation
from razorchess.search import MATE_SCORE


def _eval(fen: str, evaluation: int, best_uci: str | None = None) -> PositionEvaluation:
    candidates = []
    if best_uci:
        candidates = [CandidateMove(uci=best_uci, san="", evaluation=evaluation, depth=1, is_pv=True)]
    return PositionEvaluation(fen=fen, candidates=candidates, evaluation=evaluation, depth=1)


def _mock_engine(before: int, after: int, best_uci: str | None = None) -> AsyncMock:
    engine = AsyncMock()
    engine.evaluate = AsyncMock(side_effect=[
        _eval("before", before, best_uci),
        _eval("after", after),
    ])
    return engine


# ---------------------------------------------------------------------------
# classify_move
# ---------------------------------------------------------------------------

class TestThresholds:
    @pytest.mark.parametrize("before,after,expected", [
        (0, -300, MoveQuality.BLUNDER),
        (0, -299, MoveQuality.MISTAKE),
        (0, -100, MoveQuality.MISTAKE),
        (0, -99, MoveQuality.INACCURACY),
        (0, -50, MoveQuality.INACCURACY),
        (0, -49, MoveQuality.GOOD),
        (0, 0, MoveQuality.GOOD),
    ])
    def test_white_thresholds(self, before, after, expected):
        result = classify_move(before, after, chess.WHITE)
        assert result.quality == expected

    def test_centipawn_loss_is_absolute_difference(self):
        assert classify_move(100, -150, chess.WHITE).centipawn_loss == 250

    def test_flags_mutually_exclusive(self):
        for loss in range(0, 600, 7):
            r = classify_move(0, -loss, chess.WHITE)
            assert sum([r.is_blunder, r.is_mistake, r.is_inaccuracy]) <= 1, loss

    def test_black_perspective(self):
        """Black going from -100 (good for Black) to +200 loses 300."""
        result = classify_move(-100, 200, chess.BLACK)
        assert result.centipawn_loss == 300
        assert result.is_blunder

    def test_black_good_move(self):
        result = classify_move(-80, -75, chess.BLACK)
        assert result.centipawn_loss == 5
        assert result.quality == MoveQuality.GOOD

    def test_deterministic(self):
        a = classify_move(37, -140, chess.WHITE, played_is_best=False, legal_move_count=20)
        b = classify_move(37, -140, chess.WHITE, played_is_best=False, legal_move_count=20)
        assert a == b


class TestBrilliant:
    def test_best_move_with_alternatives(self):
        r = classify_move(50, 47, chess.WHITE, played_is_best=True, legal_move_count=12)
        assert r.is_brilliant
        assert r.quality == MoveQuality.BRILLIANT

    def test_not_best_move(self):
        r = classify_move(50, 47, chess.WHITE, played_is_best=False, legal_move_count=12)
        assert not r.is_brilliant

    def test_too_few_alternatives(self):
        r = classify_move(50, 50, chess.WHITE, played_is_best=True, legal_move_count=3)
        assert not r.is_brilliant

    def test_loss_above_limit(self):
        r = classify_move(50, 44, chess.WHITE, played_is_best=True, legal_move_count=12)
        assert not r.is_brilliant

    def test_brilliant_never_an_error(self):
        r = classify_move(0, 0, chess.WHITE, played_is_best=True, legal_move_count=30)
        assert r.is_brilliant
        assert not (r.is_blunder or r.is_mistake or r.is_inaccuracy)


class TestMoveClassification:
    def test_quality_prefers_worst_flag(self):
        assert MoveClassification(400, is_blunder=True).quality == MoveQuality.BLUNDER
        assert MoveClassification(0).quality == MoveQuality.GOOD


# ---------------------------------------------------------------------------
# analyze_player_move
# ---------------------------------------------------------------------------

class TestAnalyzePlayerMove:
    async def test_best_move_is_brilliant(self):
        board = chess.Board()
        engine = _mock_engine(before=30, after=28, best_uci="e2e4")
        played = await analyze_player_move(engine, board, chess.Move.from_uci("e2e4"), think_time=1500)
        assert played.san == "e4"
        assert played.uci == "e2e4"
        assert played.centipawn_loss == 2
        assert played.is_brilliant
        assert played.best_eval == 30
        assert played.evaluation == 28
        assert played.think_time == 1500
        assert played.is_player_move
        assert played.move_number == 1

    async def test_blunder(self):
        board = chess.Board()
        engine = _mock_engine(before=30, after=-320, best_uci="e2e4")
        played = await analyze_player_move(engine, board, chess.Move.from_uci("f2f3"))
        assert played.is_blunder
        assert not played.is_brilliant
        assert played.centipawn_loss == 350

    async def test_board_untouched(self):
        board = chess.Board()
        engine = _mock_engine(before=0, after=0)
        await analyze_player_move(engine, board, chess.Move.from_uci("d2d4"))
        assert board.fen() == chess.STARTING_FEN

    async def test_fen_is_position_after_move(self):
        board = chess.Board()
        engine = _mock_engine(before=0, after=0)
        played = await analyze_player_move(engine, board, chess.Move.from_uci("d2d4"))
        after = chess.Board()
        after.push_uci("d2d4")
        assert played.fen == after.fen()

    async def test_requests_single_line(self):
        board = chess.Board()
        engine = _mock_engine(before=0, after=0)
        await analyze_player_move(engine, board, chess.Move.from_uci("e2e4"), depth=4)
        for call in engine.evaluate.call_args_list:
            assert call.kwargs["width"] == 1
            assert call.kwargs["depth"] == 4

    async def test_mating_move_scores_full_mate(self):
        """A checkmated position has no candidates; the mate value is filled in."""
        board = chess.Board("6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1")
        engine = _mock_engine(before=MATE_SCORE, after=0, best_uci="a1a8")
        played = await analyze_player_move(engine, board, chess.Move.from_uci("a1a8"))
        assert played.evaluation == MATE_SCORE
        assert played.centipawn_loss == 0
        assert not played.is_blunder

    async def test_black_mover(self):
        board = chess.Board("rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1")
        engine = _mock_engine(before=-20, after=150, best_uci="e7e5")
        played = await analyze_player_move(engine, board, chess.Move.from_uci("g7g5"))
        assert played.centipawn_loss == 170
        assert played.is_mistake
