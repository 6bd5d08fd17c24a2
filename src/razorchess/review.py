"""Post-game review: accuracy, critical moments, opening name and advice.

The opening lookup is a short prefix table, not an ECO classifier; the
label is cosmetic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

from razorchess.models import GameSnapshot, PlayedMove
from razorchess.signals import calculate_tension

CRITICAL_SWING = 100
MAX_CRITICAL_MOMENTS = 5

# Longest prefixes first; the first match wins.
_OPENINGS: list[tuple[str, str]] = [
    ("e4 e5 Nf3 Nc6", "Italian Game / Four Knights"),
    ("e4 e5 Nf3 Nf6", "Petrov's Defense"),
    ("e4 e5 Nf3", "King's Pawn Game"),
    ("e4 c5", "Sicilian Defense"),
    ("e4 e6", "French Defense"),
    ("e4 c6", "Caro-Kann Defense"),
    ("e4 d5", "Scandinavian Defense"),
    ("d4 d5 c4", "Queen's Gambit"),
    ("d4 Nf6 c4 g6", "King's Indian Defense"),
    ("d4 Nf6 c4 e6", "Nimzo/Queen's Indian"),
    ("d4 d5", "Queen's Pawn Game"),
    ("d4 Nf6", "Indian Defense"),
    ("c4", "English Opening"),
    ("Nf3", "Reti Opening"),
]

WEAK_OPENING = "Opening preparation needs work"
WEAK_TACTICS = "Missing tactical shots"
WEAK_ENDGAME = "Endgame technique could improve"
WEAK_RUSHING = "Rushing in critical moments"

_SUGGESTIONS = {
    WEAK_OPENING: "Study the opening you played. Review the first 10 moves and compare to theory.",
    WEAK_TACTICS: "Practice puzzles daily. Focus on pattern recognition for forks, pins and skewers.",
    WEAK_ENDGAME: "Study basic endgames: king and pawn, rook endgames and the opposition.",
    WEAK_RUSHING: "Slow down in critical positions. When the eval is close, take extra time to calculate.",
}


@dataclass
class CriticalMoment:
    move_number: int
    fen: str
    played: str
    eval_swing: int
    description: str


@dataclass
class GameReview:
    game_id: str
    player_accuracy: float
    engine_accuracy: float
    tension_score: float
    opening_name: str
    critical_moments: list[CriticalMoment] = field(default_factory=list)
    weaknesses_exposed: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def detect_opening(sans: Sequence[str]) -> str:
    if len(sans) < 2:
        return "Unknown Opening"
    line = " ".join(sans[:4])
    for prefix, name in _OPENINGS:
        if line == prefix or line.startswith(prefix + " "):
            return name
    return "Unorthodox Opening"


def cpl_to_accuracy(avg_cpl: float) -> float:
    """Percent accuracy from average centipawn loss (Lichess-style curve)."""
    return max(0.0, min(100.0, 103.1668 * math.exp(-0.04354 * avg_cpl) - 3.1668))


def _average_accuracy(moves: Sequence[PlayedMove]) -> float:
    if not moves:
        return 50.0
    avg = sum(m.centipawn_loss for m in moves) / len(moves)
    return max(0.0, min(100.0, 100 - avg))


def detect_critical_moments(moves: Sequence[PlayedMove]) -> list[CriticalMoment]:
    moments = []
    for prev, move in zip(moves, moves[1:]):
        swing = abs(move.evaluation - prev.evaluation)
        if swing <= CRITICAL_SWING or not move.is_player_move:
            continue
        pawns = round(swing / 100, 1)
        if move.is_blunder:
            description = f"Blunder! {move.san} lost {pawns} pawns worth of advantage."
        elif move.is_brilliant:
            description = f"Brilliant move! {move.san} found the only winning continuation."
        elif swing > 200:
            description = f"Critical mistake with {move.san}. This significantly shifted the balance."
        else:
            description = f"Important moment: {move.san} changed the character of the position."
        moments.append(CriticalMoment(
            move_number=move.move_number,
            fen=move.fen,
            played=move.san,
            eval_swing=swing,
            description=description,
        ))
    moments.sort(key=lambda m: m.eval_swing, reverse=True)
    return moments[:MAX_CRITICAL_MOMENTS]


def weaknesses_exposed(player_moves: Sequence[PlayedMove]) -> list[str]:
    found = []
    early_errors = [m for m in player_moves if m.move_number <= 10 and (m.is_blunder or m.is_mistake)]
    if len(early_errors) >= 2:
        found.append(WEAK_OPENING)
    if sum(1 for m in player_moves if m.centipawn_loss > 200) >= 2:
        found.append(WEAK_TACTICS)
    endgame = [m for m in player_moves if m.move_number > 30]
    if len(endgame) > 3 and sum(m.centipawn_loss for m in endgame) / len(endgame) > 60:
        found.append(WEAK_ENDGAME)
    late_fast = [
        m for m in player_moves
        if m.move_number > 25 and m.think_time < 2000 and m.centipawn_loss > 50
    ]
    if len(late_fast) >= 3:
        found.append(WEAK_RUSHING)
    return found


def strengths(player_moves: Sequence[PlayedMove]) -> list[str]:
    found = []
    if not player_moves:
        return found
    opening = [m for m in player_moves if m.move_number <= 10]
    if len(opening) > 3 and sum(m.centipawn_loss for m in opening) / len(opening) < 20:
        found.append("Excellent opening preparation")
    brilliant = sum(1 for m in player_moves if m.is_brilliant)
    if brilliant:
        found.append(f"Found {brilliant} brilliant move(s)")
    avg = sum(m.centipawn_loss for m in player_moves) / len(player_moves)
    if avg < 30:
        found.append("Very consistent play throughout")
    if avg < 15:
        found.append("Near-perfect accuracy")
    if not any(m.is_blunder for m in player_moves):
        found.append("Clean game, no blunders")
    return found


def suggestions(player_moves: Sequence[PlayedMove], weaknesses: Sequence[str]) -> list[str]:
    found = [_SUGGESTIONS[w] for w in weaknesses if w in _SUGGESTIONS]
    if found or not player_moves:
        return found
    avg = sum(m.centipawn_loss for m in player_moves) / len(player_moves)
    if avg < 20:
        return ["Excellent game! Try the Attacker personality for a bigger challenge."]
    return ["Good game! Focus on reducing inaccuracies in the middlegame."]


def generate_review(game: GameSnapshot, game_id: str) -> GameReview:
    player_moves = game.player_moves
    engine_moves = [m for m in game.moves if not m.is_player_move]
    exposed = weaknesses_exposed(player_moves)
    return GameReview(
        game_id=game_id,
        player_accuracy=_average_accuracy(player_moves),
        engine_accuracy=_average_accuracy(engine_moves),
        tension_score=calculate_tension(game.moves),
        opening_name=detect_opening([m.san for m in game.moves]),
        critical_moments=detect_critical_moments(game.moves),
        weaknesses_exposed=exposed,
        strengths=strengths(player_moves),
        suggestions=suggestions(player_moves, exposed),
    )
