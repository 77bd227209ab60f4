"""Keyword classifier assigning a plant type to a seed."""

from __future__ import annotations

import re

from tane.garden.models import PlantType

# checked in order; first hit wins, pine otherwise. Keywords match at word
# starts, so "drawing" hits "draw" but "startup" does not hit "art".
_KEYWORDS: tuple[tuple[PlantType, tuple[str, ...]], ...] = (
    (
        PlantType.SAKURA,
        (
            "art", "design", "beauty", "color", "music", "style", "dream", "creative",
            "logo", "ui", "ux", "sketch", "draw", "paint", "image", "picture", "photo",
        ),
    ),
    (
        PlantType.BAMBOO,
        (
            "fast", "growth", "mvp", "hack", "tool", "productivity", "agile", "sprint",
            "code", "dev", "script", "cli", "build", "quick", "app",
        ),
    ),
    (
        PlantType.FERN,
        (
            "research", "history", "ancient", "science", "complex", "study", "learn",
            "read", "book", "deep", "theory", "math", "philosophy", "analysis",
            "investigate",
        ),
    ),
    (
        PlantType.OAK,
        (
            "business", "money", "finance", "strategy", "foundation", "long-term",
            "structure", "architecture", "plan", "company", "startup", "invest",
            "wealth", "management",
        ),
    ),
)


_PATTERNS: tuple[tuple[PlantType, re.Pattern[str]], ...] = tuple(
    (plant_type, re.compile(r"\b(?:" + "|".join(map(re.escape, keywords)) + ")"))
    for plant_type, keywords in _KEYWORDS
)


def classify_plant_type(content: str) -> PlantType:
    text = content.lower()
    for plant_type, pattern in _PATTERNS:
        if pattern.search(text):
            return plant_type
    return PlantType.PINE
