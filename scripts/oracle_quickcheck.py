from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from tempfile import TemporaryDirectory
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import services.llm as llm
from services.config import load_settings


def _assert_score_parsing() -> None:
    original = llm._ollama_generate
    try:
        llm._ollama_generate = lambda _prompt, system, settings: " 0.75\n"
        with TemporaryDirectory() as td:
            settings = replace(load_settings({}), data_dir=Path(td))
            out = llm.analyze_request("The keynote was inspiring.", settings=settings)
        assert out == {"score": 0.75}, f"Expected score 0.75, got {out}"
    finally:
        llm._ollama_generate = original


def _assert_fenced_topics() -> None:
    original = llm._ollama_generate
    try:
        llm._ollama_generate = lambda _prompt, system, settings: (
            '```json\n[{"topic":"Venue","comments":["Room was cold","Great view"]}]\n```'
        )
        with TemporaryDirectory() as td:
            settings = replace(load_settings({}), data_dir=Path(td))
            out = llm.analyze_request("Room was cold\nGreat view", mode="topics", settings=settings)
        assert out["topics"][0]["topic"] == "Venue", f"Expected Venue topic, got {out}"
    finally:
        llm._ollama_generate = original


def _assert_unparseable_score_fails() -> None:
    original = llm._ollama_generate
    try:
        llm._ollama_generate = lambda _prompt, system, settings: "I cannot tell."
        with TemporaryDirectory() as td:
            settings = replace(load_settings({}), data_dir=Path(td))
            try:
                llm.analyze_request("Hmm.", settings=settings)
            except llm.LLMError:
                return
        raise AssertionError("Expected LLMError for an unparseable score")
    finally:
        llm._ollama_generate = original


def main() -> None:
    _assert_score_parsing()
    _assert_fenced_topics()
    _assert_unparseable_score_fails()
    print("oracle_quickcheck: ok")


if __name__ == "__main__":
    main()
