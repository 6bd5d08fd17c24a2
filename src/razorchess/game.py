from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field

import aiosqlite
import chess

from razorchess.classifier import ANALYSIS_DEPTH, analyze_player_move
from razorchess.engine import EngineProtocol
from razorchess.models import (
    GamePhase,
    GameResult,
    GameSnapshot,
    PlayedMove,
    PlayerProfile,
    ResultKind,
)
from razorchess.personalities import DEFAULT_PERSONALITY, get_personality, random_commentary
from razorchess.rating import update_profile_from_game
from razorchess.review import GameReview, generate_review
from razorchess.selector import AdaptiveSelector, SelectedMove
from razorchess.signals import DEFAULT_TENSION, calculate_tension, detect_game_phase
from razorchess.storage import ProfileStore

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_ID = "default"


@dataclass
class GameSession:
    id: str
    player_color: str
    profile: PlayerProfile
    selector: AdaptiveSelector
    board: chess.Board = field(default_factory=chess.Board)
    moves: list[PlayedMove] = field(default_factory=list)
    phase: GamePhase = GamePhase.OPENING
    tension: float = DEFAULT_TENSION
    result: GameResult | None = None
    rating_delta: int | None = None
    last_rationale: str = ""
    last_commentary: str = ""
    started_at: float = field(default_factory=time.time)
    turn_started: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def personality(self) -> str:
        return self.selector.personality

    @property
    def is_player_turn(self) -> bool:
        return (self.board.turn == chess.WHITE) == (self.player_color == "white")

    @property
    def evaluation(self) -> int:
        return self.moves[-1].evaluation if self.moves else 0

    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            player_color=self.player_color,
            moves=list(self.moves),
            phase=self.phase,
            result=self.result,
            personality=self.personality,
        )


def _game_status(board: chess.Board, result: GameResult | None = None) -> str:
    if result is not None and result.kind in (ResultKind.RESIGNATION, ResultKind.TIMEOUT):
        return result.kind.value
    if board.is_checkmate():
        return "checkmate"
    if board.is_stalemate():
        return "stalemate"
    if board.is_insufficient_material() or board.can_claim_draw():
        return "draw"
    return "playing"


def _board_result(board: chess.Board) -> GameResult | None:
    if board.is_checkmate():
        winner = "black" if board.turn == chess.WHITE else "white"
        return GameResult(ResultKind.CHECKMATE, winner=winner)
    if board.is_stalemate():
        return GameResult(ResultKind.STALEMATE)
    if board.is_insufficient_material():
        return GameResult(ResultKind.DRAW, reason="insufficient")
    if board.is_seventyfive_moves() or board.can_claim_fifty_moves():
        return GameResult(ResultKind.DRAW, reason="fifty-move")
    if board.is_fivefold_repetition() or board.can_claim_threefold_repetition():
        return GameResult(ResultKind.DRAW, reason="repetition")
    return None


def _is_over(board: chess.Board) -> bool:
    return board.is_game_over(claim_draw=True)


class GameManager:
    """Owns live sessions. Engine and store are injected, never looked up globally."""

    def __init__(
        self,
        engine: EngineProtocol,
        store: ProfileStore,
        rng: random.Random | None = None,
        analysis_depth: int = ANALYSIS_DEPTH,
    ):
        self._engine = engine
        self._store = store
        self._rng = rng or random.Random()
        self._analysis_depth = analysis_depth
        self._sessions: dict[str, GameSession] = {}

    def get_game(self, session_id: str) -> GameSession | None:
        return self._sessions.get(session_id)

    def _require(self, session_id: str) -> GameSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session not found: {session_id}")
        return session

    async def new_game(
        self,
        player_color: str = "white",
        personality: str = DEFAULT_PERSONALITY,
        profile_id: str = DEFAULT_PROFILE_ID,
    ) -> dict:
        """Create a session. When the human plays Black the engine moves first."""
        if player_color not in ("white", "black"):
            raise ValueError(f"Invalid color: {player_color}")
        profile = await self._store.load_profile(profile_id)
        session = GameSession(
            id=str(uuid.uuid4()),
            player_color=player_color,
            profile=profile,
            selector=AdaptiveSelector(self._engine, get_personality(personality).name, rng=self._rng),
        )
        self._sessions[session.id] = session

        engine_move = None
        if player_color == "black":
            async with session.lock:
                engine_move = await self._play_engine_move(session)
        state = self._state(session)
        state["opponent_move_uci"] = engine_move.uci if engine_move else None
        state["opponent_move_san"] = engine_move.san if engine_move else None
        return state

    def _state(self, session: GameSession) -> dict:
        return {
            "session_id": session.id,
            "fen": session.board.fen(),
            "status": _game_status(session.board, session.result),
            "result": session.result.to_dict() if session.result else None,
            "player_color": session.player_color,
            "personality": session.personality,
            "phase": session.phase.value,
            "tension": session.tension,
            "evaluation": session.evaluation,
            "rating": session.profile.rating,
            "rating_delta": session.rating_delta,
        }

    async def _analyze(self, session: GameSession, move: chess.Move, think_time: int) -> PlayedMove:
        board = session.board
        try:
            return await analyze_player_move(
                self._engine, board, move, think_time=think_time, depth=self._analysis_depth,
            )
        except RuntimeError as e:
            logger.warning("Move analysis failed: %s", e)
            after = board.copy()
            after.push(move)
            return PlayedMove(
                move_number=board.fullmove_number,
                san=board.san(move),
                uci=move.uci(),
                fen=after.fen(),
                evaluation=session.evaluation,
                best_eval=session.evaluation,
                timestamp=time.time(),
                think_time=think_time,
            )

    async def make_move(
        self, session_id: str, move_uci: str, think_time: int | None = None,
    ) -> dict:
        """Apply the human move, grade it, and answer with the engine's move.

        An unparseable or illegal move leaves the board untouched and comes
        back with ``accepted`` False.
        """
        session = self._require(session_id)
        async with session.lock:
            board = session.board
            rejected = {**self._state(session), "accepted": False}
            if session.result is not None or _is_over(board):
                return {**rejected, "error": "Game is over"}
            if not session.is_player_turn:
                return {**rejected, "error": "Not your turn"}
            try:
                move = chess.Move.from_uci(move_uci)
            except (chess.InvalidMoveError, ValueError):
                return {**rejected, "error": f"Invalid move format: {move_uci}"}
            if move not in board.legal_moves:
                return {**rejected, "error": f"Illegal move: {move_uci}"}

            if think_time is None:
                think_time = int((time.monotonic() - session.turn_started) * 1000)
            played = await self._analyze(session, move, think_time)
            board.push(move)
            session.moves.append(played)
            session.selector.update_player_accuracy(played)
            self._refresh_signals(session)

            engine_move = None
            if _is_over(board):
                await self._finish(session)
            else:
                engine_move = await self._play_engine_move(session)

            return {
                **self._state(session),
                "accepted": True,
                "player_move_san": played.san,
                "classification": {
                    "centipawn_loss": played.centipawn_loss,
                    "is_blunder": played.is_blunder,
                    "is_mistake": played.is_mistake,
                    "is_inaccuracy": played.is_inaccuracy,
                    "is_brilliant": played.is_brilliant,
                },
                "opponent_move_uci": engine_move.uci if engine_move else None,
                "opponent_move_san": engine_move.san if engine_move else None,
                "rationale": session.last_rationale if engine_move else None,
                "commentary": session.last_commentary if engine_move else None,
            }

    def _refresh_signals(self, session: GameSession) -> None:
        session.phase = detect_game_phase(session.board)
        session.tension = calculate_tension(session.moves)

    async def _play_engine_move(self, session: GameSession) -> SelectedMove:
        board = session.board
        started = time.monotonic()
        try:
            selected = await session.selector.select_move(board, session.snapshot(), session.profile)
            move = chess.Move.from_uci(selected.uci)
            if move not in board.legal_moves:
                raise ValueError(f"Engine produced illegal move {selected.uci}")
        except (RuntimeError, ValueError) as e:
            logger.warning("Engine move failed (%s), playing a random legal move", e)
            move = self._rng.choice(list(board.legal_moves))
            selected = SelectedMove(
                uci=move.uci(),
                san=board.san(move),
                evaluation=session.evaluation,
                rationale="Improvising.",
            )

        san = board.san(move)
        move_number = board.fullmove_number
        board.push(move)
        session.moves.append(PlayedMove(
            move_number=move_number,
            san=san,
            uci=move.uci(),
            fen=board.fen(),
            evaluation=selected.evaluation,
            best_eval=selected.evaluation,
            timestamp=time.time(),
            think_time=int((time.monotonic() - started) * 1000),
            is_player_move=False,
        ))
        session.last_rationale = selected.rationale
        session.last_commentary = random_commentary(session.personality, self._rng)
        self._refresh_signals(session)
        session.turn_started = time.monotonic()

        if _is_over(board):
            await self._finish(session)
        return SelectedMove(
            uci=move.uci(), san=san, evaluation=selected.evaluation,
            rationale=selected.rationale, score=selected.score,
        )

    async def _finish(self, session: GameSession, result: GameResult | None = None) -> None:
        """Record the result and fold the game into the persisted profile."""
        session.result = result or _board_result(session.board) or GameResult(
            ResultKind.DRAW, reason="agreement",
        )
        game = session.snapshot()
        profile_id = session.profile.id
        updated: PlayerProfile | None = None
        delta = 0
        try:
            async with self._store.profile_lock(profile_id):
                profile = await self._store.load_profile(profile_id)
                merged, merged_delta = update_profile_from_game(profile, game)
                await self._store.save_profile(merged)
                updated, delta = merged, merged_delta
                await self._store.append_game(profile_id, {
                    "id": session.id,
                    "date": time.time(),
                    "moves": [m.to_dict() for m in game.moves],
                    "result": session.result.to_dict(),
                    "personality": session.personality,
                    "player_color": session.player_color,
                    "tension": session.tension,
                })
                score = session.result.score_for(session.player_color)
                await self._store.append_rating(profile_id, {
                    "timestamp": time.time(),
                    "rating": updated.rating,
                    "game_id": session.id,
                    "opponent": session.personality,
                    "result": {1.0: "win", 0.0: "loss"}.get(score, "draw"),
                })
        except (aiosqlite.Error, RuntimeError):
            logger.exception("Could not persist game %s", session.id)
            # Keep the stored profile if it was already saved.
            if updated is None:
                updated, delta = update_profile_from_game(session.profile, game)
        session.profile = updated
        session.rating_delta = delta

    async def resign(self, session_id: str) -> dict:
        session = self._require(session_id)
        async with session.lock:
            if session.result is None:
                winner = "black" if session.player_color == "white" else "white"
                await self._finish(session, GameResult(ResultKind.RESIGNATION, winner=winner))
            return self._state(session)

    async def set_personality(self, session_id: str, personality: str) -> dict:
        session = self._require(session_id)
        async with session.lock:
            session.selector.set_personality(personality)
            return self._state(session)

    def review(self, session_id: str) -> GameReview:
        session = self._require(session_id)
        return generate_review(session.snapshot(), session.id)
