"""Shared fixtures: in-memory vector index, fake embedder, scripted translator."""

import math
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from engine.checkpoint_manager import CheckpointManager
from engine.context_window import ContextEntry
from engine.line_translator import TranslationResponse
from engine.term_store import TermPair, TermStore


class FakeEmbedder:
    """Letter-frequency vectors: similar spellings land close together."""

    def __init__(self, fail_on: Optional[set] = None):
        self.fail_on = fail_on or set()
        self.calls: List[str] = []

    async def embed(self, text: str) -> Optional[List[float]]:
        self.calls.append(text)
        if text.strip().lower() in self.fail_on:
            return None
        vector = [0.0] * 27
        for ch in text.lower():
            if "a" <= ch <= "z":
                vector[ord(ch) - ord("a")] += 1.0
            else:
                vector[26] += 0.1
        return vector


class InMemoryTermIndex:
    def __init__(self):
        self.rows: Dict[str, tuple] = {}

    def upsert(self, key: str, term: TermPair, vector: Sequence[float]) -> None:
        self.rows[key] = (term, list(vector))

    def count(self) -> int:
        return len(self.rows)

    def all_terms(self) -> Dict[str, TermPair]:
        return {key: term for key, (term, _) in self.rows.items()}

    def query(self, vector: Sequence[float], limit: int) -> List[TermPair]:
        def cosine(other):
            dot = sum(a * b for a, b in zip(vector, other))
            norm = math.sqrt(sum(a * a for a in vector)) * math.sqrt(sum(b * b for b in other))
            return dot / norm if norm else 0.0

        ranked = sorted(self.rows.values(), key=lambda row: cosine(row[1]), reverse=True)
        return [term for term, _ in ranked[:limit]]


class ScriptedTranslator:
    """
    Deterministic translator: "<line>" -> "TR(<line>)".
    `fails(line, attempt)` decides whether a call raises.
    Records the context it was given for every call.
    """

    def __init__(
        self,
        fails: Optional[Callable[[str, int], bool]] = None,
        new_terms: Optional[Callable[[str], List[TermPair]]] = None,
    ):
        self.fails = fails or (lambda line, attempt: False)
        self.new_terms = new_terms or (lambda line: [])
        self.calls: List[dict] = []
        self._attempts: Dict[str, int] = {}

    async def translate(
        self,
        existing_terms: Sequence[TermPair],
        context: Sequence[ContextEntry],
        current_line: str,
        lookahead: Sequence[str],
    ) -> TranslationResponse:
        attempt = self._attempts.get(current_line, 0) + 1
        self._attempts[current_line] = attempt
        self.calls.append(
            {
                "line": current_line,
                "context": list(context),
                "lookahead": list(lookahead),
                "terms": list(existing_terms),
            }
        )
        if self.fails(current_line, attempt):
            raise RuntimeError(f"provider error for {current_line!r}")
        return TranslationResponse(
            translated_line=f"TR({current_line})",
            new_terms=self.new_terms(current_line),
        )


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def term_index() -> InMemoryTermIndex:
    return InMemoryTermIndex()


@pytest.fixture
def term_store(tmp_path: Path, term_index, embedder) -> TermStore:
    return TermStore("test-keywords", term_index, embedder, tmp_path / "keywords")


@pytest.fixture
def checkpoints(tmp_path: Path) -> CheckpointManager:
    return CheckpointManager(tmp_path / "state", tmp_path / "translated")


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
