import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from razorchess.config import Settings
from razorchess.engine import create_engine
from razorchess.game import DEFAULT_PROFILE_ID, GameManager
from razorchess.personalities import all_personalities
from razorchess.storage import ProfileStore

logger = logging.getLogger(__name__)

settings = Settings()
logging.basicConfig(level=settings.log_level.upper())

# --- Service instances ---

engine = create_engine(settings)
store = ProfileStore(db_path=settings.profile_db_path, history_limit=settings.game_history_limit)
games = GameManager(engine, store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await store.start()
    try:
        await engine.start()
    except Exception as e:
        # The session layer falls back to random legal moves without an engine.
        logger.error("Engine init failed: %s", e)
    yield
    await engine.dispose()
    await store.close()


app = FastAPI(title="RazorChess", lifespan=lifespan)


# --- Request/Response models ---

class EvalRequest(BaseModel):
    fen: str
    depth: int | None = None
    width: int = Field(default=5, ge=1, le=64)


class NewGameRequest(BaseModel):
    player_color: Literal["white", "black"] = "white"
    personality: str = settings.default_personality
    profile_id: str = DEFAULT_PROFILE_ID


class MoveRequest(BaseModel):
    session_id: str
    move: str
    think_time: int | None = None


class SessionRequest(BaseModel):
    session_id: str


class PersonalityRequest(BaseModel):
    session_id: str
    personality: str


# --- Endpoints ---

@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/personalities")
async def personalities():
    return [
        {
            "name": p.name,
            "display_name": p.display_name,
            "description": p.description,
            "style_weights": asdict(p.style_weights),
        }
        for p in all_personalities()
    ]


@app.post("/api/engine/evaluate")
async def evaluate(req: EvalRequest):
    try:
        result = await engine.evaluate(req.fen, depth=req.depth, width=req.width)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return asdict(result)


@app.post("/api/game/new")
async def new_game(req: NewGameRequest | None = None):
    req = req or NewGameRequest()
    return await games.new_game(
        player_color=req.player_color, personality=req.personality, profile_id=req.profile_id,
    )


@app.post("/api/game/move")
async def game_move(req: MoveRequest):
    try:
        result = await games.make_move(req.session_id, req.move, think_time=req.think_time)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")
    if not result["accepted"]:
        raise HTTPException(status_code=400, detail=result["error"])
    return result


@app.post("/api/game/resign")
async def resign(req: SessionRequest):
    try:
        return await games.resign(req.session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


@app.post("/api/game/personality")
async def set_personality(req: PersonalityRequest):
    try:
        return await games.set_personality(req.session_id, req.personality)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


@app.get("/api/game/{session_id}/review")
async def review(session_id: str):
    try:
        return asdict(games.review(session_id))
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


@app.get("/api/profile/{profile_id}")
async def profile(profile_id: str):
    loaded = await store.load_profile(profile_id)
    return {
        "profile": loaded.to_dict(),
        "rating_history": await store.load_rating_history(profile_id),
        "games": len(await store.load_game_history(profile_id)),
    }
