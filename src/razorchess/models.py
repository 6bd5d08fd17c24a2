"""Shared data models for the adaptive opponent.

The search backends, selector, classifier and rating updater exchange these
types. Evaluations are always signed centipawns from White's perspective.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field, fields


class GamePhase(enum.Enum):
    OPENING = "opening"
    MIDDLEGAME = "middlegame"
    ENDGAME = "endgame"


@dataclass
class CandidateMove:
    """One ranked root move from a search backend."""
    uci: str
    san: str
    evaluation: int             # centipawns, positive = White better
    depth: int
    is_pv: bool = False


@dataclass
class PositionEvaluation:
    fen: str
    candidates: list[CandidateMove] = field(default_factory=list)
    evaluation: int = 0
    depth: int = 0
    mate: int | None = None

    @property
    def best(self) -> CandidateMove | None:
        return self.candidates[0] if self.candidates else None


def neutral_evaluation(fen: str) -> PositionEvaluation:
    """Fallback result used on timeouts and unreachable positions."""
    return PositionEvaluation(fen=fen, candidates=[], evaluation=0, depth=0, mate=None)


@dataclass
class AdaptiveConfig:
    target_eval: float = 0.0
    adaptive_strength: float = 0.6    # how hard the engine pulls toward parity
    human_plausibility: float = 0.7
    complexity_bias: float = 0.4
    mistake_rate: float = 0.05


@dataclass
class StyleVector:
    aggressive: float = 0.5
    positional: float = 0.5
    trappy: float = 0.3

    def blend(self, other: StyleVector, alpha: float) -> StyleVector:
        return StyleVector(
            aggressive=self.aggressive * (1 - alpha) + other.aggressive * alpha,
            positional=self.positional * (1 - alpha) + other.positional * alpha,
            trappy=self.trappy * (1 - alpha) + other.trappy * alpha,
        )


@dataclass(frozen=True)
class PlayedMove:
    """A ply as it was played. Appended once, never edited."""
    move_number: int
    san: str
    uci: str
    fen: str                    # position after the move
    evaluation: int             # eval after the move
    best_eval: int              # best eval available before the move
    centipawn_loss: int = 0
    is_blunder: bool = False
    is_mistake: bool = False
    is_inaccuracy: bool = False
    is_brilliant: bool = False
    timestamp: float = 0.0
    think_time: int = 0         # milliseconds
    is_player_move: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


class ResultKind(enum.Enum):
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"
    RESIGNATION = "resignation"
    TIMEOUT = "timeout"


DECISIVE_RESULTS = (ResultKind.CHECKMATE, ResultKind.RESIGNATION, ResultKind.TIMEOUT)


@dataclass(frozen=True)
class GameResult:
    kind: ResultKind
    winner: str | None = None   # "white" / "black"
    reason: str | None = None   # draws only

    def score_for(self, color: str) -> float:
        if self.kind in DECISIVE_RESULTS:
            return 1.0 if self.winner == color else 0.0
        return 0.5

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "winner": self.winner, "reason": self.reason}


@dataclass
class GameSnapshot:
    """The slice of a session the selector and updater read per call."""
    player_color: str = "white"
    moves: list[PlayedMove] = field(default_factory=list)
    phase: GamePhase = GamePhase.OPENING
    result: GameResult | None = None
    personality: str = "mentor"

    @property
    def engine_color(self) -> str:
        return "black" if self.player_color == "white" else "white"

    @property
    def player_moves(self) -> list[PlayedMove]:
        return [m for m in self.moves if m.is_player_move]


@dataclass
class PlayerProfile:
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Player"
    rating: int = 1200
    opening_accuracy: float = 0.5
    tactic_rating: float = 0.5
    endgame_rating: float = 0.5
    blunder_rate: float = 0.15
    time_management: float = 0.5
    style: StyleVector = field(default_factory=StyleVector)
    weaknesses: list[str] = field(default_factory=list)
    games_played: int = 0
    moves_analyzed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> PlayerProfile:
        """Build a profile from stored data, filling any missing keys with defaults."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        style = kwargs.pop("style", None)
        profile = cls(**kwargs)
        if isinstance(style, dict):
            profile.style = StyleVector(**{
                k: float(v) for k, v in style.items() if k in ("aggressive", "positional", "trappy")
            })
        # Bad values raise TypeError/ValueError here rather than mid-game.
        for name in _PROFILE_INT_FIELDS:
            setattr(profile, name, int(getattr(profile, name)))
        for name in _PROFILE_FLOAT_FIELDS:
            setattr(profile, name, float(getattr(profile, name)))
        if not isinstance(profile.weaknesses, list):
            raise TypeError(f"weaknesses must be a list, got {type(profile.weaknesses).__name__}")
        profile.weaknesses = [str(w) for w in profile.weaknesses]
        profile.id = str(profile.id)
        profile.name = str(profile.name)
        return profile


_PROFILE_INT_FIELDS = ("rating", "games_played", "moves_analyzed")
_PROFILE_FLOAT_FIELDS = (
    "opening_accuracy", "tactic_rating", "endgame_rating", "blunder_rate", "time_management",
)
