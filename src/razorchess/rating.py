"""Rating and skill-profile updates from a finished game.

The rating moves ELO-style against a performance rating estimated from the
player's accuracy, with a K-factor that shrinks as games accumulate. Skill
dimensions and the style vector are exponential moving averages; weaknesses
are recomputed from scratch every game.
"""

from __future__ import annotations

import dataclasses
from typing import Sequence

from razorchess.models import GameSnapshot, PlayedMove, PlayerProfile, StyleVector

RATING_FLOOR = 100
EMA_ALPHA = 0.3

OPENING_LAST_MOVE = 10
ENDGAME_FIRST_MOVE = 31


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def _avg_cpl(moves: Sequence[PlayedMove]) -> float:
    return sum(m.centipawn_loss for m in moves) / len(moves)


def accuracy_to_rating(accuracy: float) -> float:
    """Map accuracy in [0, 1] to an approximate performance rating."""
    if accuracy >= 0.95:
        return 2500 + (accuracy - 0.95) * 10000
    if accuracy >= 0.85:
        return 2000 + (accuracy - 0.85) * 5000
    if accuracy >= 0.70:
        return 1500 + (accuracy - 0.70) * 3333
    if accuracy >= 0.50:
        return 1000 + (accuracy - 0.50) * 2500
    return 400 + accuracy * 1200


def k_factor(games_played: int) -> int:
    return max(16, 40 - games_played)


def expected_score(rating: float, opponent_rating: float) -> float:
    return 1 / (1 + 10 ** ((rating - opponent_rating) / 400))


def detect_style(player_moves: Sequence[PlayedMove]) -> StyleVector:
    if not player_moves:
        return StyleVector()
    n = len(player_moves)
    big_swings = sum(1 for m in player_moves if abs(m.evaluation) > 150)
    suboptimal = sum(1 for m in player_moves if 30 < m.centipawn_loss < 150)
    return StyleVector(
        aggressive=min(1.0, big_swings / n * 3),
        positional=_clamp(1 - _avg_cpl(player_moves) / 100),
        trappy=min(1.0, suboptimal / n * 2),
    )


def detect_weaknesses(player_moves: Sequence[PlayedMove]) -> list[str]:
    weaknesses: list[str] = []
    n = len(player_moves)

    blunders = [m for m in player_moves if m.is_blunder]
    if blunders:
        early = sum(1 for m in blunders if m.move_number <= OPENING_LAST_MOVE)
        late = sum(1 for m in blunders if m.move_number >= ENDGAME_FIRST_MOVE)
        if early > len(blunders) * 0.4:
            weaknesses.append("opening preparation")
        if late > len(blunders) * 0.4:
            weaknesses.append("endgame technique")

    big_misses = sum(1 for m in player_moves if m.centipawn_loss > 200 and not m.is_blunder)
    if big_misses > n * 0.1:
        weaknesses.append("tactical awareness")

    if n > 5:
        avg_think = sum(m.think_time for m in player_moves) / n
        rushed = sum(1 for m in player_moves if m.think_time < avg_think * 0.3)
        if rushed > n * 0.3:
            weaknesses.append("time management - too many rushed moves")

    return weaknesses


def _phase_accuracy(moves: Sequence[PlayedMove], fallback: float) -> float:
    if not moves:
        return fallback
    return _clamp(1 - _avg_cpl(moves) / 150)


def update_profile_from_game(
    profile: PlayerProfile, game: GameSnapshot,
) -> tuple[PlayerProfile, int]:
    """Return ``(updated_profile, rating_delta)``. The input profile is not modified."""
    player_moves = game.player_moves
    if not player_moves:
        return profile, 0

    avg_cpl = _avg_cpl(player_moves)
    blunder_rate = sum(1 for m in player_moves if m.is_blunder) / len(player_moves)
    accuracy = _clamp(1 - avg_cpl / 200)

    performance = accuracy_to_rating(accuracy)
    expected = expected_score(profile.rating, performance)
    actual = game.result.score_for(game.player_color) if game.result else 0.5
    delta = round(k_factor(profile.games_played) * (actual - expected))

    opening_acc = _phase_accuracy(
        [m for m in player_moves if m.move_number <= OPENING_LAST_MOVE], profile.opening_accuracy,
    )
    endgame_acc = _phase_accuracy(
        [m for m in player_moves if m.move_number >= ENDGAME_FIRST_MOVE], profile.endgame_rating,
    )

    def blend(old: float, new: float) -> float:
        return old * (1 - EMA_ALPHA) + new * EMA_ALPHA

    updated = dataclasses.replace(
        profile,
        rating=max(RATING_FLOOR, profile.rating + delta),
        opening_accuracy=blend(profile.opening_accuracy, opening_acc),
        tactic_rating=blend(profile.tactic_rating, accuracy),
        endgame_rating=blend(profile.endgame_rating, endgame_acc),
        blunder_rate=blend(profile.blunder_rate, blunder_rate),
        style=profile.style.blend(detect_style(player_moves), EMA_ALPHA),
        weaknesses=detect_weaknesses(player_moves),
        games_played=profile.games_played + 1,
        moves_analyzed=profile.moves_analyzed + len(player_moves),
    )
    return updated, delta
