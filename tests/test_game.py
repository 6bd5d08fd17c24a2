"""Tests for game sessions: move handling, engine replies and game end."""

import asyncio
import random
from unittest.mock import AsyncMock

import aiosqlite
import chess
import pytest

from razorchess.engine import LocalSearchEngine
from razorchess.game import GameManager
from razorchess.models import (
    CandidateMove,
    GamePhase,
    PlayerProfile,
    PositionEvaluation,
    ResultKind,
)
from razorchess.review import GameReview
from razorchess.storage import ProfileStore

BACK_RANK_MATE_FEN = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"


@pytest.fixture
async def store():
    s = ProfileStore(db_path=":memory:")
    await s.start()
    yield s
    await s.close()


@pytest.fixture
async def engine():
    e = LocalSearchEngine(max_depth=1, timeout=5.0)
    yield e
    await e.dispose()


@pytest.fixture
def manager(engine, store):
    return GameManager(engine, store, rng=random.Random(0), analysis_depth=1)


def _failing_engine() -> AsyncMock:
    e = AsyncMock()
    e.evaluate = AsyncMock(side_effect=RuntimeError("Engine not started. Call start() first."))
    return e


# ---------------------------------------------------------------------------
# Session creation
# ---------------------------------------------------------------------------

class TestNewGame:
    async def test_white_player_starts(self, manager):
        state = await manager.new_game(player_color="white")
        assert state["fen"] == chess.STARTING_FEN
        assert state["status"] == "playing"
        assert state["opponent_move_uci"] is None
        assert state["personality"] == "mentor"
        assert state["rating"] == 1200

    async def test_black_player_gets_engine_move(self, manager):
        state = await manager.new_game(player_color="black")
        board = chess.Board(state["fen"])
        assert board.turn == chess.BLACK
        assert len(board.piece_map()) == 32
        assert state["opponent_move_uci"] is not None
        session = manager.get_game(state["session_id"])
        assert len(session.moves) == 1
        assert not session.moves[0].is_player_move

    async def test_invalid_color(self, manager):
        with pytest.raises(ValueError):
            await manager.new_game(player_color="green")

    async def test_unknown_personality_uses_default(self, manager):
        state = await manager.new_game(personality="nobody")
        assert state["personality"] == "mentor"

    async def test_profile_loaded(self, manager, store):
        await store.save_profile(PlayerProfile(id="p7", rating=1650))
        state = await manager.new_game(profile_id="p7")
        assert state["rating"] == 1650


# ---------------------------------------------------------------------------
# Moves
# ---------------------------------------------------------------------------

class TestMakeMove:
    async def test_legal_move_gets_reply(self, manager):
        state = await manager.new_game()
        result = await manager.make_move(state["session_id"], "e2e4", think_time=3000)
        assert result["accepted"]
        assert result["player_move_san"] == "e4"
        assert result["opponent_move_uci"]
        assert result["rationale"]
        assert result["commentary"]
        assert chess.Board(result["fen"]).turn == chess.WHITE
        assert set(result["classification"]) == {
            "centipawn_loss", "is_blunder", "is_mistake", "is_inaccuracy", "is_brilliant",
        }

    async def test_moves_recorded(self, manager):
        state = await manager.new_game()
        await manager.make_move(state["session_id"], "d2d4", think_time=1000)
        session = manager.get_game(state["session_id"])
        assert [m.is_player_move for m in session.moves] == [True, False]
        assert session.moves[0].think_time == 1000
        assert session.selector.rolling_accuracy

    async def test_illegal_move_rejected(self, manager):
        state = await manager.new_game()
        result = await manager.make_move(state["session_id"], "e2e5")
        assert not result["accepted"]
        assert "Illegal" in result["error"]
        assert result["fen"] == chess.STARTING_FEN
        assert manager.get_game(state["session_id"]).moves == []

    async def test_garbage_move_rejected(self, manager):
        state = await manager.new_game()
        result = await manager.make_move(state["session_id"], "zz")
        assert not result["accepted"]
        assert "format" in result["error"]

    async def test_unknown_session(self, manager):
        with pytest.raises(KeyError):
            await manager.make_move("missing", "e2e4")

    async def test_phase_and_tension_refreshed(self, manager):
        state = await manager.new_game()
        sid = state["session_id"]
        for uci in ("e2e4", "d2d4"):
            result = await manager.make_move(sid, uci)
            if not result["accepted"]:
                break
        session = manager.get_game(sid)
        assert session.phase == GamePhase.OPENING
        assert 0.0 <= session.tension <= 10.0


class TestEngineFallback:
    async def test_engine_failure_plays_random_legal_move(self, store):
        manager = GameManager(_failing_engine(), store, rng=random.Random(1))
        state = await manager.new_game()
        result = await manager.make_move(state["session_id"], "e2e4")
        assert result["accepted"]
        assert result["rationale"] == "Improvising."
        board = chess.Board()
        board.push_uci("e2e4")
        assert chess.Move.from_uci(result["opponent_move_uci"]) in board.legal_moves

    async def test_illegal_engine_suggestion_replaced(self, store):
        bogus = AsyncMock()
        bogus.evaluate = AsyncMock(return_value=PositionEvaluation(
            fen="",
            candidates=[
                CandidateMove(uci="e2e4", san="e4", evaluation=0, depth=1, is_pv=True),
                CandidateMove(uci="d2d4", san="d4", evaluation=0, depth=1),
            ],
        ))
        manager = GameManager(bogus, store, rng=random.Random(2))
        state = await manager.new_game()
        # Both suggestions are White moves; Black is to move after e4.
        result = await manager.make_move(state["session_id"], "e2e4")
        assert result["accepted"]
        assert result["rationale"] == "Improvising."
        board = chess.Board()
        board.push_uci("e2e4")
        assert chess.Move.from_uci(result["opponent_move_uci"]) in board.legal_moves


# ---------------------------------------------------------------------------
# Game end
# ---------------------------------------------------------------------------

class TestGameEnd:
    async def test_resign_updates_profile(self, manager, store):
        state = await manager.new_game(profile_id="resigner")
        sid = state["session_id"]
        await manager.make_move(sid, "e2e4")
        final = await manager.resign(sid)
        assert final["status"] == "resignation"
        assert final["result"]["winner"] == "black"
        assert final["rating_delta"] is not None

        profile = await store.load_profile("resigner")
        assert profile.games_played == 1
        assert profile.rating == final["rating"]
        assert len(await store.load_rating_history("resigner")) == 1
        games = await store.load_game_history("resigner")
        assert games[0]["id"] == sid
        assert games[0]["result"]["kind"] == "resignation"

    async def test_resign_twice_counts_once(self, manager, store):
        state = await manager.new_game(profile_id="twice")
        await manager.make_move(state["session_id"], "e2e4")
        await manager.resign(state["session_id"])
        await manager.resign(state["session_id"])
        assert (await store.load_profile("twice")).games_played == 1

    async def test_checkmate_ends_game(self, manager, store):
        state = await manager.new_game(profile_id="mater")
        sid = state["session_id"]
        manager.get_game(sid).board = chess.Board(BACK_RANK_MATE_FEN)
        result = await manager.make_move(sid, "a1a8")
        assert result["accepted"]
        assert result["status"] == "checkmate"
        assert result["result"]["kind"] == ResultKind.CHECKMATE.value
        assert result["result"]["winner"] == "white"
        assert result["opponent_move_uci"] is None
        assert result["rating_delta"] > 0
        assert (await store.load_profile("mater")).games_played == 1

    async def test_moves_rejected_after_game_over(self, manager):
        state = await manager.new_game()
        await manager.resign(state["session_id"])
        result = await manager.make_move(state["session_id"], "e2e4")
        assert not result["accepted"]
        assert result["error"] == "Game is over"

    async def test_persistence_failure_still_finishes(self, engine):
        closed = ProfileStore(db_path=":memory:")
        manager = GameManager(engine, closed, rng=random.Random(3), analysis_depth=1)
        state = await manager.new_game()
        await manager.make_move(state["session_id"], "e2e4")
        final = await manager.resign(state["session_id"])
        assert final["status"] == "resignation"
        assert final["rating_delta"] is not None

    async def test_malformed_stored_profile_still_finishes(self, manager, store):
        await store._db.execute(
            "INSERT OR REPLACE INTO blobs (key, value, updated_at) VALUES (?, ?, 0)",
            ("profile:mangled", '{"rating": 1200, "games_played": "many", "opening_accuracy": "x"}'),
        )
        await store._db.commit()
        state = await manager.new_game(profile_id="mangled")
        sid = state["session_id"]
        await manager.make_move(sid, "e2e4")
        final = await manager.resign(sid)
        assert final["status"] == "resignation"
        profile = await store.load_profile("mangled")
        assert profile.games_played == 1
        assert manager.get_game(sid).profile.games_played == 1

    async def test_late_write_failure_keeps_saved_profile(self, manager, store, monkeypatch):
        state = await manager.new_game(profile_id="late")
        sid = state["session_id"]
        await manager.make_move(sid, "e2e4")
        # Another session finished in the meantime.
        await store.save_profile(PlayerProfile(id="late", rating=1500, games_played=4))
        monkeypatch.setattr(store, "append_game", AsyncMock(side_effect=aiosqlite.Error("disk full")))

        await manager.resign(sid)
        stored = await store.load_profile("late")
        session = manager.get_game(sid)
        assert stored.games_played == 5
        assert session.profile.games_played == 5
        assert session.profile.rating == stored.rating


class TestSessionControls:
    async def test_set_personality(self, manager):
        state = await manager.new_game()
        updated = await manager.set_personality(state["session_id"], "attacker")
        assert updated["personality"] == "attacker"
        assert manager.get_game(state["session_id"]).selector.config.adaptive_strength == 0.5

    async def test_set_personality_waits_for_move_in_progress(self, manager):
        state = await manager.new_game()
        session = manager.get_game(state["session_id"])
        async with session.lock:
            task = asyncio.create_task(manager.set_personality(state["session_id"], "trickster"))
            await asyncio.sleep(0)
            assert not task.done()
            assert session.personality == "mentor"
        updated = await task
        assert updated["personality"] == "trickster"

    async def test_set_personality_unknown_session(self, manager):
        with pytest.raises(KeyError):
            await manager.set_personality("missing", "attacker")

    async def test_review(self, manager):
        state = await manager.new_game()
        await manager.make_move(state["session_id"], "e2e4")
        review = manager.review(state["session_id"])
        assert isinstance(review, GameReview)
        assert review.game_id == state["session_id"]

    async def test_review_unknown_session(self, manager):
        with pytest.raises(KeyError):
            manager.review("missing")
