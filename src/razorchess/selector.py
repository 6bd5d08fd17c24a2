"""Adaptive opponent move selection.

Turns ranked engine candidates into one move that keeps the game close.
The pipeline pulls a target evaluation toward parity, shifts it by the
estimated strength of the human, scores every candidate for balance,
human plausibility and complexity, adds a personality bonus, samples with
a rating-dependent softmax temperature and occasionally swaps in a
slightly worse move.
"""

from __future__ import annotations

import logging
import math
import random
from collections import deque
from dataclasses import dataclass

import chess

from razorchess.engine import EngineProtocol
from razorchess.models import (
    AdaptiveConfig,
    CandidateMove,
    GamePhase,
    GameSnapshot,
    PlayedMove,
    PlayerProfile,
)
from razorchess.personalities import DEFAULT_PERSONALITY, build_adaptive_config, get_personality

logger = logging.getLogger(__name__)

SEARCH_DEPTH = 16
CANDIDATE_COUNT = 8

ACCURACY_WINDOW = 10
STRENGTH_SAMPLES = 5
MIN_STRENGTH_SAMPLES = 3

BALANCE_RANGE = 500
MAX_RATING = 2500

MISTAKE_MIN_DIFF = 20
MISTAKE_MAX_DIFF = 150
DECIDED_EVAL = 300


@dataclass
class ScoredCandidate:
    candidate: CandidateMove
    engine_eval: float          # candidate eval from the engine's side
    score: float


@dataclass
class SelectedMove:
    uci: str
    san: str
    evaluation: int             # White's perspective
    rationale: str
    score: float = 0.0


def _accuracy(cp_loss: float) -> float:
    return max(0.0, min(1.0, 1 - cp_loss / 200))


def human_plausibility_score(candidate: CandidateMove, rating: float) -> float:
    """How natural the move looks for a human of ``rating``."""
    elo_factor = rating / MAX_RATING
    if candidate.is_pv:
        return 0.4 + elo_factor * 0.6
    magnitude = abs(candidate.evaluation)
    if magnitude < 50:
        return 0.7
    if magnitude < 150:
        return 0.5 + (1 - elo_factor) * 0.3
    if magnitude < 300:
        return 0.2 + (1 - elo_factor) * 0.5
    return (1 - elo_factor) * 0.3


def complexity_score(candidate: CandidateMove, phase: GamePhase) -> float:
    tension = max(0.0, 1 - abs(candidate.evaluation) / 300)
    phase_bonus = 0.3 if phase == GamePhase.MIDDLEGAME else 0.0
    return min(1.0, tension + phase_bonus)


def personality_bonus(personality: str, candidate: CandidateMove, engine_eval: float) -> float:
    if personality == "attacker":
        return 0.2 if engine_eval > 50 else 0.0
    if personality == "grinder":
        return 0.2 if abs(engine_eval) < 50 else 0.0
    if personality == "trickster":
        return 0.25 if not candidate.is_pv and engine_eval > -100 else 0.0
    if personality == "mentor":
        return 0.1 if abs(engine_eval) < 100 else 0.0
    return 0.0


def softmax_temperature(rating: float) -> float:
    return max(0.1, 1 - rating / 3000)


def mistake_probability(config: AdaptiveConfig, rating: float) -> float:
    return config.mistake_rate + max(0.0, (1500 - rating) / 5000)


def build_rationale(selected: ScoredCandidate, best: CandidateMove) -> str:
    diff = abs(selected.candidate.evaluation - best.evaluation)
    if diff < 10:
        return "Playing the strongest move in this position."
    if selected.score > 0.8:
        return "A strong move that keeps the game balanced."
    if diff < 50:
        return "A solid move - not the absolute best, but very reasonable."
    return "An interesting choice that maintains tension in the position."


class AdaptiveSelector:
    """Per-session move selector. Holds the rolling accuracy window, never the session."""

    def __init__(
        self,
        engine: EngineProtocol,
        personality: str = DEFAULT_PERSONALITY,
        rng: random.Random | None = None,
    ):
        self._engine = engine
        self._rng = rng or random.Random()
        self.personality = get_personality(personality).name
        self.config = build_adaptive_config(self.personality)
        self._rolling: deque[float] = deque(maxlen=ACCURACY_WINDOW)
        self.momentum_streak = 0

    def set_personality(self, personality: str) -> None:
        self.personality = get_personality(personality).name
        self.config = build_adaptive_config(self.personality)

    def reset(self) -> None:
        self._rolling.clear()
        self.momentum_streak = 0

    @property
    def rolling_accuracy(self) -> list[float]:
        return list(self._rolling)

    def update_player_accuracy(self, move: PlayedMove) -> None:
        self._rolling.append(_accuracy(move.centipawn_loss))
        if move.centipawn_loss < 30:
            self.momentum_streak = max(0, self.momentum_streak) + 1
        elif move.centipawn_loss > 100:
            self.momentum_streak = min(0, self.momentum_streak) - 1
        else:
            self.momentum_streak = 0

    def estimate_player_strength(self, profile: PlayerProfile) -> float:
        """Recent accuracy in [0, 1]; the stored rating until enough moves are seen."""
        if len(self._rolling) < MIN_STRENGTH_SAMPLES:
            return profile.rating / MAX_RATING
        recent = list(self._rolling)[-STRENGTH_SAMPLES:]
        momentum = 0.1 if self.momentum_streak > 2 else 0.0
        return min(1.0, sum(recent) / len(recent) + momentum)

    def target_eval(self, engine_eval: float, profile: PlayerProfile) -> float:
        correction = -engine_eval * self.config.adaptive_strength
        target = engine_eval + correction
        strength = self.estimate_player_strength(profile)
        return target + (strength - 0.5) * 100

    def score_candidates(
        self,
        candidates: list[CandidateMove],
        engine_is_white: bool,
        target: float,
        profile: PlayerProfile,
        phase: GamePhase,
    ) -> list[ScoredCandidate]:
        scored = []
        for c in candidates:
            engine_eval = c.evaluation if engine_is_white else -c.evaluation
            balance = max(0.0, 1 - abs(engine_eval - target) / BALANCE_RANGE)
            score = (
                1.0 * balance
                + self.config.human_plausibility * human_plausibility_score(c, profile.rating)
                + self.config.complexity_bias * complexity_score(c, phase)
                + personality_bonus(self.personality, c, engine_eval)
            )
            scored.append(ScoredCandidate(candidate=c, engine_eval=engine_eval, score=score))
        return scored

    def sample(self, scored: list[ScoredCandidate], rating: float) -> ScoredCandidate:
        ordered = sorted(scored, key=lambda s: s.score, reverse=True)
        temperature = softmax_temperature(rating)
        top = ordered[0].score
        weights = [math.exp((s.score - top) / temperature) for s in ordered]
        threshold = self._rng.random() * sum(weights)
        for item, weight in zip(ordered, weights):
            threshold -= weight
            if threshold <= 0:
                return item
        return ordered[0]

    def maybe_inject_mistake(
        self,
        selected: ScoredCandidate,
        scored: list[ScoredCandidate],
        rating: float,
    ) -> ScoredCandidate:
        if self._rng.random() > mistake_probability(self.config, rating):
            return selected
        if abs(selected.candidate.evaluation) > DECIDED_EVAL:
            return selected
        worse = [
            s for s in scored
            if s.candidate.uci != selected.candidate.uci
            and MISTAKE_MIN_DIFF < abs(s.candidate.evaluation - selected.candidate.evaluation) < MISTAKE_MAX_DIFF
        ]
        if not worse:
            return selected
        mistake = self._rng.choice(worse)
        logger.debug("Injecting %s instead of %s", mistake.candidate.uci, selected.candidate.uci)
        return ScoredCandidate(mistake.candidate, mistake.engine_eval, selected.score * 0.8)

    async def select_move(
        self,
        board: chess.Board,
        game: GameSnapshot,
        profile: PlayerProfile,
    ) -> SelectedMove:
        """Pick the engine's move for ``board``.

        Raises RuntimeError when the search returns no candidates; callers
        check for terminal positions first.
        """
        result = await self._engine.evaluate(board.fen(), depth=SEARCH_DEPTH, width=CANDIDATE_COUNT)
        candidates = result.candidates
        if not candidates:
            raise RuntimeError("No legal moves available")

        if len(candidates) == 1:
            only = candidates[0]
            return SelectedMove(
                uci=only.uci, san=only.san, evaluation=only.evaluation,
                rationale="Only one legal move.",
            )

        engine_is_white = game.engine_color == "white"
        engine_eval = result.evaluation if engine_is_white else -result.evaluation
        target = self.target_eval(engine_eval, profile)

        scored = self.score_candidates(candidates, engine_is_white, target, profile, game.phase)
        selected = self.sample(scored, profile.rating)
        final = self.maybe_inject_mistake(selected, scored, profile.rating)

        return SelectedMove(
            uci=final.candidate.uci,
            san=final.candidate.san,
            evaluation=final.candidate.evaluation,
            rationale=build_rationale(final, candidates[0]),
            score=final.score,
        )
