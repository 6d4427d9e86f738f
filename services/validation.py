from __future__ import annotations

from fastapi import HTTPException

MAX_TEXT_CHARS = 200_000


def sanitize_preview(text: str, limit: int = 140) -> str:
    clean = " ".join((text or "").split())
    return clean[:limit]


def validate_text_input(text: str | None) -> str:
    raw = text or ""
    if not raw.strip():
        raise HTTPException(status_code=400, detail="Please enter some text to analyze.")
    if len(raw) > MAX_TEXT_CHARS:
        raise HTTPException(status_code=400, detail=f"text exceeds {MAX_TEXT_CHARS} characters")
    return raw
