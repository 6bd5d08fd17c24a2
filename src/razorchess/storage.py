"""Persistent player data: profiles, capped game history and a rating log.

Each record is a whole JSON blob under a fixed key in one SQLite table.
Missing or corrupted blobs fall back to defaults; read failures never reach
gameplay code.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from razorchess.models import PlayerProfile

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS blobs (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""

DEFAULT_HISTORY_LIMIT = 100


def _profile_key(profile_id: str) -> str:
    return f"profile:{profile_id}"


def _games_key(profile_id: str) -> str:
    return f"games:{profile_id}"


def _ratings_key(profile_id: str) -> str:
    return f"ratings:{profile_id}"


class ProfileStore:
    """Async key/value store backed by SQLite."""

    def __init__(self, db_path: str = "data/profiles.db", history_limit: int = DEFAULT_HISTORY_LIMIT):
        self._db_path = db_path
        self._history_limit = history_limit
        self._db: aiosqlite.Connection | None = None
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def available(self) -> bool:
        return self._db is not None

    async def start(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        if self._db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @asynccontextmanager
    async def profile_lock(self, profile_id: str) -> AsyncIterator[None]:
        """Serialise read-modify-write of one profile's records."""
        lock = self._locks.setdefault(profile_id, asyncio.Lock())
        async with lock:
            yield

    async def _get(self, key: str):
        """Decoded blob for ``key``, or None when missing, unreadable or corrupt."""
        if self._db is None:
            return None
        try:
            cursor = await self._db.execute("SELECT value FROM blobs WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.warning("Read of %s failed: %s", key, e)
            return None
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Corrupted blob under %s, using defaults", key)
            return None

    async def _put(self, key: str, value) -> None:
        if self._db is None:
            raise RuntimeError("Profile store not started. Call start() first.")
        await self._db.execute(
            "INSERT INTO blobs (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
            (key, json.dumps(value), time.time()),
        )
        await self._db.commit()

    async def load_profile(self, profile_id: str, name: str = "Player") -> PlayerProfile:
        data = await self._get(_profile_key(profile_id))
        if isinstance(data, dict):
            try:
                profile = PlayerProfile.from_dict(data)
                profile.id = profile_id
                return profile
            except (TypeError, ValueError) as e:
                logger.warning("Unusable profile %s (%s), using defaults", profile_id, e)
        return PlayerProfile(id=profile_id, name=name)

    async def save_profile(self, profile: PlayerProfile) -> None:
        await self._put(_profile_key(profile.id), profile.to_dict())

    async def _load_list(self, key: str) -> list[dict]:
        data = await self._get(key)
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    async def load_game_history(self, profile_id: str) -> list[dict]:
        return await self._load_list(_games_key(profile_id))

    async def append_game(self, profile_id: str, record: dict) -> None:
        """Append a finished game; only the newest ``history_limit`` are kept."""
        games = await self.load_game_history(profile_id)
        games.append(record)
        await self._put(_games_key(profile_id), games[-self._history_limit:])

    async def load_rating_history(self, profile_id: str) -> list[dict]:
        return await self._load_list(_ratings_key(profile_id))

    async def append_rating(self, profile_id: str, entry: dict) -> None:
        history = await self.load_rating_history(profile_id)
        history.append(entry)
        await self._put(_ratings_key(profile_id), history)
