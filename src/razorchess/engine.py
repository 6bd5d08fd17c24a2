"""Search backends behind one interface.

``EngineProtocol`` is what the adaptive selector and classifier depend on.
Two variants exist: ``LocalSearchEngine`` runs the in-process minimax on a
dedicated worker thread, ``StockfishEngine`` talks UCI to an external
process. Both resolve every call within a timeout, falling back to a neutral
evaluation instead of blocking the caller.
"""

from __future__ import annotations

import abc
import asyncio
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Iterator

import chess
import chess.engine

from razorchess.config import Settings
from razorchess.models import CandidateMove, PositionEvaluation, neutral_evaluation
from razorchess.search import MATE_SCORE, search_position

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# Share of the call timeout the local search may spend before returning
# its best-so-far ranking.
_SOFT_BUDGET = 0.9


def validate_board(fen: str) -> chess.Board:
    try:
        board = chess.Board(fen)
    except ValueError as e:
        raise ValueError(f"Invalid FEN: {fen}") from e
    if not board.is_valid():
        raise ValueError(f"Illegal position: {fen}")
    return board


class EngineProtocol(abc.ABC):
    """Contract shared by all search backends."""

    async def start(self) -> None:
        """Acquire backend resources. Local backends need nothing."""

    @abc.abstractmethod
    async def evaluate(self, fen: str, depth: int | None = None, width: int = 5) -> PositionEvaluation:
        ...

    @abc.abstractmethod
    async def get_top_moves(self, fen: str, count: int = 10, depth: int | None = None) -> list[CandidateMove]:
        ...

    @abc.abstractmethod
    async def dispose(self) -> None:
        ...


class LocalSearchEngine(EngineProtocol):
    """In-process minimax on a single worker thread."""

    def __init__(self, max_depth: int = 3, timeout: float = DEFAULT_TIMEOUT):
        self._max_depth = max_depth
        self._timeout = timeout
        self._executor: ThreadPoolExecutor | None = self._new_executor()
        self._pending: dict[int, tuple[asyncio.Future, threading.Event]] = {}
        self._counter = itertools.count(1)

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="razorchess-search")

    async def start(self) -> None:
        """Recreate the worker after a previous dispose()."""
        if self._executor is None:
            self._executor = self._new_executor()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @contextmanager
    def _track(self, fut: asyncio.Future, stop: threading.Event) -> Iterator[int]:
        """Register a request; the entry is removed and the search stopped on any exit."""
        req_id = next(self._counter)
        self._pending[req_id] = (fut, stop)
        try:
            yield req_id
        finally:
            self._pending.pop(req_id, None)
            stop.set()

    async def evaluate(self, fen: str, depth: int | None = None, width: int = 5) -> PositionEvaluation:
        if self._executor is None:
            raise RuntimeError("Engine disposed")
        board = validate_board(fen)
        search_depth = min(depth or self._max_depth, self._max_depth)

        stop = threading.Event()
        deadline = time.monotonic() + self._timeout * _SOFT_BUDGET
        loop = asyncio.get_running_loop()
        fut = loop.run_in_executor(
            self._executor, search_position, board, search_depth, width, deadline, stop,
        )
        with self._track(fut, stop):
            try:
                return await asyncio.wait_for(fut, timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Local search timed out after %.1fs for %s", self._timeout, fen)
                return neutral_evaluation(fen)

    async def get_top_moves(self, fen: str, count: int = 10, depth: int | None = None) -> list[CandidateMove]:
        result = await self.evaluate(fen, depth=depth, width=count)
        return result.candidates

    async def dispose(self) -> None:
        for fut, stop in self._pending.values():
            stop.set()
            if not fut.done():
                fut.cancel()
        self._pending.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None


def _score_to_cp(score: chess.engine.Score) -> tuple[int, int | None]:
    """Map a White-relative engine score to (centipawns, mate distance)."""
    mate = score.mate()
    if mate is not None:
        if mate > 0:
            return MATE_SCORE - mate, mate
        return -MATE_SCORE - mate, mate
    cp = score.score()
    return (cp if cp is not None else 0), None


class StockfishEngine(EngineProtocol):
    """External UCI engine. Substitutes for the local search behind the same contract."""

    def __init__(
        self,
        stockfish_path: str = "stockfish",
        hash_mb: int = 64,
        timeout: float = DEFAULT_TIMEOUT,
        default_depth: int = 16,
    ):
        self._path = stockfish_path
        self._hash_mb = hash_mb
        self._timeout = timeout
        self._default_depth = default_depth
        self._engine: chess.engine.UciProtocol | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        if self._engine is not None:
            await self.dispose()
        _, self._engine = await chess.engine.popen_uci(self._path)
        await self._engine.configure({"Hash": self._hash_mb})

    async def dispose(self) -> None:
        if self._engine:
            try:
                await self._engine.quit()
            except chess.engine.EngineError:
                logger.debug("Stockfish already gone during quit")
            except (asyncio.TimeoutError, ConnectionError):
                # Transport may already be closed (process killed, shutdown race)
                logger.debug("Stockfish transport closed during quit")
            self._engine = None

    async def _analyse_with_retry(self, board: chess.Board, limit: chess.engine.Limit, **kwargs):
        """Run engine.analyse with one restart attempt on engine crash."""
        try:
            return await self._engine.analyse(board, limit, **kwargs)
        except chess.engine.EngineTerminatedError:
            logger.warning("Stockfish crashed, attempting restart")
            try:
                await self.start()
            except Exception as e:
                raise RuntimeError("Engine restart failed") from e
            try:
                return await self._engine.analyse(board, limit, **kwargs)
            except chess.engine.EngineTerminatedError as e:
                raise RuntimeError("Engine restart failed") from e

    async def evaluate(self, fen: str, depth: int | None = None, width: int = 5) -> PositionEvaluation:
        if self._engine is None:
            raise RuntimeError("Engine not started. Call start() first.")
        board = validate_board(fen)
        if board.is_game_over():
            return PositionEvaluation(fen=fen, mate=0 if board.is_checkmate() else None)

        limit = chess.engine.Limit(depth=depth or self._default_depth)
        try:
            async with self._lock:
                results = await asyncio.wait_for(
                    self._analyse_with_retry(board, limit, multipv=max(1, width)),
                    timeout=self._timeout,
                )
        except asyncio.TimeoutError:
            logger.warning("Stockfish timed out after %.1fs for %s", self._timeout, fen)
            return neutral_evaluation(fen)
        if not isinstance(results, list):
            results = [results]

        candidates: list[CandidateMove] = []
        mate = None
        for info in results:
            pv = info.get("pv", [])
            if not pv or pv[0] not in board.legal_moves:
                continue
            cp, line_mate = _score_to_cp(info["score"].white())
            if not candidates:
                mate = line_mate
            candidates.append(CandidateMove(
                uci=pv[0].uci(),
                san=board.san(pv[0]),
                evaluation=cp,
                depth=info.get("depth", limit.depth),
                is_pv=not candidates,
            ))
        if not candidates:
            return neutral_evaluation(fen)
        return PositionEvaluation(
            fen=fen,
            candidates=candidates,
            evaluation=candidates[0].evaluation,
            depth=candidates[0].depth,
            mate=mate,
        )

    async def get_top_moves(self, fen: str, count: int = 10, depth: int | None = None) -> list[CandidateMove]:
        result = await self.evaluate(fen, depth=depth, width=min(count, 10))
        return result.candidates


def create_engine(settings: Settings) -> EngineProtocol:
    """Build the backend named by ``settings.engine_backend``."""
    if settings.engine_backend == "stockfish":
        return StockfishEngine(
            stockfish_path=settings.stockfish_path,
            hash_mb=settings.stockfish_hash_mb,
            timeout=settings.search_timeout,
        )
    return LocalSearchEngine(max_depth=settings.search_depth, timeout=settings.search_timeout)
