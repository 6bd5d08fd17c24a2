"""Opponent personalities.

Each personality bundles style weights, overrides for the adaptive
selector's config, and a pool of commentary lines. The frontend sends the
personality ``name``; :func:`get_personality` resolves it to the profile.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Mapping

from razorchess.models import AdaptiveConfig, StyleVector


@dataclass(frozen=True)
class PersonalityProfile:
    name: str                   # key sent by the frontend
    display_name: str
    description: str
    style_weights: StyleVector
    adaptive_overrides: Mapping[str, float] = field(default_factory=dict)
    commentary: tuple[str, ...] = ()


_PERSONALITY_LIST: list[PersonalityProfile] = [
    PersonalityProfile(
        name="grinder",
        display_name="The Grinder",
        description=(
            "Plays boring, solid, positional chess and waits for you to crack. "
            "Patient and relentless, like playing against a wall."
        ),
        style_weights=StyleVector(aggressive=0.2, positional=0.9, trappy=0.1),
        adaptive_overrides=MappingProxyType({
            "adaptive_strength": 0.7,
            "human_plausibility": 0.8,
            "complexity_bias": 0.2,     # prefers simple, clear positions
            "mistake_rate": 0.03,
        }),
        commentary=(
            "Solid move. Let's see if you can break through.",
            "I'm not going anywhere. Take your time.",
            "That's fine, but can you keep it up for 60 moves?",
            "I'll just improve my pieces slowly...",
            "No rush. I have all day.",
            "A quiet move with a quiet purpose.",
            "The position is equal. Just how I like it.",
            "You'll have to earn every point against me.",
            "Slow, steady, squeezing.",
            "Let me just tuck my king away safely...",
        ),
    ),
    PersonalityProfile(
        name="attacker",
        display_name="The Attacker",
        description=(
            "Sacrifices pieces and goes for your king. Plays sharp openings "
            "and is always looking for blood."
        ),
        style_weights=StyleVector(aggressive=0.95, positional=0.3, trappy=0.6),
        adaptive_overrides=MappingProxyType({
            "adaptive_strength": 0.5,   # less concerned about balance
            "human_plausibility": 0.6,
            "complexity_bias": 0.8,
            "mistake_rate": 0.08,       # sometimes overextends
        }),
        commentary=(
            "SACRIFICE! Who needs pawns anyway?",
            "Your king looks lonely over there...",
            "I smell blood!",
            "Here comes the storm!",
            "Defense? Never heard of it.",
            "All pieces to the kingside!",
            "That pawn was in my way. It had to go.",
            "Is it getting hot in here, or is that just your king?",
            "Time to complicate things!",
            "Open lines, open files, open season.",
        ),
    ),
    PersonalityProfile(
        name="trickster",
        display_name="The Trickster",
        description=(
            "Sets traps and plays psychologically. Moves look innocent but "
            "hide threats, and it loves making you think you're winning."
        ),
        style_weights=StyleVector(aggressive=0.5, positional=0.4, trappy=0.95),
        adaptive_overrides=MappingProxyType({
            "adaptive_strength": 0.6,
            "human_plausibility": 0.5,  # sometimes plays unusual moves
            "complexity_bias": 0.7,
            "mistake_rate": 0.06,
        }),
        commentary=(
            "Hmm, this looks like a free pawn... or does it?",
            "Oh no, I blundered! ...or did I?",
            "This move looks passive. That's what I want you to think.",
            "Go ahead, take the bait.",
            "The obvious move isn't always the right one...",
            "I left that piece hanging on purpose. Trust me.",
            "You're winning? Are you sure about that?",
            "Sometimes the best trap is the one you don't see.",
            "I wonder if you'll spot the trick...",
            "That knight is just decorative. Pay no attention to it.",
        ),
    ),
    PersonalityProfile(
        name="mentor",
        display_name="The Mentor",
        description=(
            "Makes instructive moves and drops hints. Plays slightly "
            "sub-optimal but educational chess."
        ),
        style_weights=StyleVector(aggressive=0.4, positional=0.7, trappy=0.2),
        adaptive_overrides=MappingProxyType({
            "adaptive_strength": 0.8,   # very responsive to player level
            "human_plausibility": 0.9,
            "complexity_bias": 0.5,
            "mistake_rate": 0.04,
        }),
        commentary=(
            "Good move! You're controlling the center well.",
            "Careful, my bishop is looking at your kingside.",
            "That's a solid developing move. Keep it up!",
            "Think about pawn structure before making that trade.",
            "Your last move left a small weakness. Can you spot it?",
            "I'm going to challenge your knight. Where will it go?",
            "Nice! That's exactly what a strong player would do.",
            "Consider: what do I want to do next?",
            "This endgame is instructive. Focus on king activity!",
            "Check every capture before you commit.",
        ),
    ),
]

PERSONALITIES: dict[str, PersonalityProfile] = {p.name: p for p in _PERSONALITY_LIST}

DEFAULT_PERSONALITY = "mentor"

_UNIT_FIELDS = ("adaptive_strength", "human_plausibility", "complexity_bias", "mistake_rate")


def get_personality(name: str) -> PersonalityProfile:
    """Look up a personality by name, falling back to the default."""
    return PERSONALITIES.get(name, PERSONALITIES[DEFAULT_PERSONALITY])


def all_personalities() -> list[PersonalityProfile]:
    return list(_PERSONALITY_LIST)


def random_commentary(name: str, rng: random.Random | None = None) -> str:
    lines = get_personality(name).commentary
    return (rng or random).choice(lines)


def build_adaptive_config(name: str) -> AdaptiveConfig:
    """Default config merged with the personality's overrides, clamped to [0, 1]."""
    overrides = get_personality(name).adaptive_overrides
    known = {f.name for f in fields(AdaptiveConfig)}
    config = AdaptiveConfig(**{k: float(v) for k, v in overrides.items() if k in known})
    for attr in _UNIT_FIELDS:
        setattr(config, attr, min(1.0, max(0.0, getattr(config, attr))))
    return config
