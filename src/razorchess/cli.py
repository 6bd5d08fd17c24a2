"""CLI utility for ranking moves in a single position.

Usage:
    python -m razorchess.cli <fen> [--depth N] [--width N]
        [--select] [--personality NAME] [--rating ELO]

Prints JSON with the ranked candidates and, with --select, the move the
adaptive opponent would choose.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

import chess

from razorchess.engine import LocalSearchEngine
from razorchess.models import GameSnapshot, PlayerProfile
from razorchess.personalities import DEFAULT_PERSONALITY, PERSONALITIES
from razorchess.selector import AdaptiveSelector
from razorchess.signals import detect_game_phase


async def _run(args: argparse.Namespace, board: chess.Board) -> dict:
    engine = LocalSearchEngine(max_depth=args.depth, timeout=args.timeout)
    try:
        result = await engine.evaluate(board.fen(), depth=args.depth, width=args.width)
        output = {
            "fen": result.fen,
            "phase": detect_game_phase(board).value,
            "evaluation": result.evaluation,
            "mate": result.mate,
            "candidates": [asdict(c) for c in result.candidates],
        }
        if args.select and result.candidates:
            selector = AdaptiveSelector(engine, args.personality)
            engine_color = "white" if board.turn == chess.WHITE else "black"
            game = GameSnapshot(
                player_color="black" if engine_color == "white" else "white",
                phase=detect_game_phase(board),
                personality=args.personality,
            )
            selected = await selector.select_move(board, game, PlayerProfile(rating=args.rating))
            output["selected"] = asdict(selected)
    finally:
        await engine.dispose()
    return output


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Rank moves with the local search engine")
    parser.add_argument("fen", help="Position in FEN")
    parser.add_argument("--depth", type=int, default=3, help="Search depth in plies")
    parser.add_argument("--width", type=int, default=5, help="Number of candidates")
    parser.add_argument("--timeout", type=float, default=5.0, help="Search timeout in seconds")
    parser.add_argument("--select", action="store_true", help="Also run the adaptive selector")
    parser.add_argument(
        "--personality", default=DEFAULT_PERSONALITY, choices=sorted(PERSONALITIES),
    )
    parser.add_argument("--rating", type=int, default=1200, help="Opponent (human) rating")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        board = chess.Board(args.fen)
    except ValueError:
        print(f"error: invalid FEN: {args.fen}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(asyncio.run(_run(args, board)), indent=2))


if __name__ == "__main__":
    main()
