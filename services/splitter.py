from __future__ import annotations

import re

DEFAULT_SPLIT_RULE = "newline"

# Earlier variants also split on punctuation; newline-only keeps sentence-internal punctuation.
SPLIT_RULES: dict[str, re.Pattern[str]] = {
    "newline": re.compile(r"\n+"),
    "semicolon": re.compile(r"[\n;]+"),
    "comma": re.compile(r"[\n,]+"),
    "period": re.compile(r"[\n.]+"),
}


def get_split_pattern(rule: str) -> re.Pattern[str]:
    key = str(rule or "").strip().lower()
    if key not in SPLIT_RULES:
        raise ValueError(f"Unknown split rule: {rule!r} (accepted: {', '.join(sorted(SPLIT_RULES))})")
    return SPLIT_RULES[key]


def split_units(text: str | None, rule: str = DEFAULT_SPLIT_RULE) -> list[str]:
    pattern = get_split_pattern(rule)
    if not text:
        return []
    units: list[str] = []
    for piece in pattern.split(text):
        unit = piece.strip()
        if unit:
            units.append(unit)
    return units
