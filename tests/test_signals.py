"""Tests for game phase detection and the tension estimate."""

import chess

from razorchess.models import GamePhase, PlayedMove
from razorchess.signals import calculate_tension, detect_game_phase


def _moves(evals: list[int]) -> list[PlayedMove]:
    return [
        PlayedMove(move_number=i // 2 + 1, san="x", uci="a1a1", fen="", evaluation=e, best_eval=e)
        for i, e in enumerate(evals)
    ]


class TestGamePhase:
    def test_start_position_is_opening(self):
        assert detect_game_phase(chess.Board()) == GamePhase.OPENING

    def test_full_board_after_move_ten_is_middlegame(self):
        board = chess.Board("rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 11")
        assert detect_game_phase(board) == GamePhase.MIDDLEGAME

    def test_developed_position_past_move_ten(self):
        board = chess.Board(
            "r2q1rk1/ppp1bppp/2np1n2/4p3/2B1P1b1/2NP1N2/PPP2PPP/R1BQ1RK1 w - - 0 12"
        )
        assert detect_game_phase(board) == GamePhase.MIDDLEGAME

    def test_few_pieces_is_endgame(self):
        board = chess.Board("4k3/5ppp/8/8/8/8/5PPP/4K2R w K - 0 30")
        assert detect_game_phase(board) == GamePhase.ENDGAME

    def test_majors_traded_is_endgame(self):
        board = chess.Board("r3k3/pppppppp/2n1bn2/8/8/2N1BN2/PPPPPPPP/R3K3 w - - 0 20")
        assert detect_game_phase(board) == GamePhase.ENDGAME

    def test_early_trades_leave_opening(self):
        """Early in the game but with material gone: not an opening any more."""
        board = chess.Board("r1b1kbnr/pppp1ppp/2n5/8/8/5N2/PPP2PPP/RNB1KB1R w KQkq - 0 6")
        assert detect_game_phase(board) == GamePhase.MIDDLEGAME


class TestTension:
    def test_short_games_default(self):
        assert calculate_tension([]) == 5.0
        assert calculate_tension(_moves([0, 10, -10])) == 5.0

    def test_dead_level_game(self):
        # 10 * 0.5 + 0 lead changes + 3
        assert calculate_tension(_moves([0, 0, 0, 0])) == 8.0

    def test_lopsided_game_is_dull(self):
        assert calculate_tension(_moves([1000] * 8)) == 0.0

    def test_seesaw_game_capped_at_ten(self):
        assert calculate_tension(_moves([20, -20] * 4)) == 10.0

    def test_always_in_range(self):
        sequences = [
            [0, 300, -300, 900, -900, 50],
            [99999, -99999, 99999, -99999],
            [5, 5, 5, 5, 5, 5, 5, 5, 5],
            [-200, -180, -150, -400, -600, -1200],
        ]
        for evals in sequences:
            t = calculate_tension(_moves(evals))
            assert 0.0 <= t <= 10.0, evals
