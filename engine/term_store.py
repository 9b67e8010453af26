# engine/term_store.py
# Keyword (term pair) store: embedding-indexed, keyed by normalized source term.
#
# Responsibility:
# - upsert / nearest-neighbour search over recurring names and terms
# - keep a sorted JSON snapshot on disk (recovery + audit copy)
# - reconcile snapshot -> live index at process start
#
# INVARIANTS:
# - one live entry per normalized key (strip + lower), last write wins
# - terms are never deleted, only upserted

import json
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

import lancedb
import pyarrow as pa
from google import genai
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from engine.checkpoint_manager import atomic_write_text
from utils.key_rotator import KeyRotator
from utils.logger import log


class EmbeddingFailure(RuntimeError):
    pass


class TermPair(BaseModel):
    """{"from": source term, "to": target rendering}"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")

    @property
    def key(self) -> str:
        return normalize_key(self.source)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


def normalize_key(source: str) -> str:
    return source.strip().lower()


# =========================================================
# BACKEND INTERFACES
# =========================================================
class Embedder(Protocol):
    async def embed(self, text: str) -> Optional[List[float]]: ...


class TermIndex(Protocol):
    def upsert(self, key: str, term: TermPair, vector: Sequence[float]) -> None: ...

    def all_terms(self) -> Dict[str, TermPair]: ...

    def count(self) -> int: ...

    def query(self, vector: Sequence[float], limit: int) -> List[TermPair]: ...


class GeminiEmbedder:
    """Google GenAI embeddings, API key rotated per call."""

    def __init__(self, keys: KeyRotator, model: str = "text-embedding-004"):
        self.keys = keys
        self.model = model
        self._clients: Dict[str, genai.Client] = {}

    def _client(self) -> genai.Client:
        api_key = self.keys.next("embed")
        if api_key not in self._clients:
            self._clients[api_key] = genai.Client(api_key=api_key)
        return self._clients[api_key]

    async def embed(self, text: str) -> Optional[List[float]]:
        result = await self._client().aio.models.embed_content(
            model=self.model,
            contents=text,
        )
        if not result.embeddings:
            return None
        return result.embeddings[0].values


def _table_names(db) -> List[str]:
    # list_tables() replaced table_names(); it returns a paged response object
    if hasattr(db, "list_tables"):
        listed = db.list_tables()
        return list(getattr(listed, "tables", listed))
    return list(db.table_names())


class LanceTermIndex:
    """LanceDB table: id (normalized key) | source | target | vector."""

    def __init__(self, db_path, table_name: str):
        db_path = Path(db_path)
        db_path.mkdir(parents=True, exist_ok=True)
        self._db = lancedb.connect(str(db_path))
        self.table_name = table_name
        self._table = None
        if table_name in _table_names(self._db):
            self._table = self._db.open_table(table_name)

    def upsert(self, key: str, term: TermPair, vector: Sequence[float]) -> None:
        row = {
            "id": key,
            "source": term.source,
            "target": term.target,
            "vector": [float(v) for v in vector],
        }

        if self._table is None:
            schema = pa.schema(
                [
                    pa.field("id", pa.string()),
                    pa.field("source", pa.string()),
                    pa.field("target", pa.string()),
                    pa.field("vector", pa.list_(pa.float32(), len(row["vector"]))),
                ]
            )
            self._table = self._db.create_table(self.table_name, data=[row], schema=schema)
            log(f"TERM STORE: created table {self.table_name} | dim={len(row['vector'])}")
            return

        (
            self._table.merge_insert("id")
            .when_matched_update_all()
            .when_not_matched_insert_all()
            .execute([row])
        )

    def count(self) -> int:
        return 0 if self._table is None else self._table.count_rows()

    def all_terms(self) -> Dict[str, TermPair]:
        if self._table is None:
            return {}
        rows = self._table.to_arrow().select(["id", "source", "target"]).to_pylist()
        return {r["id"]: TermPair(source=r["source"], target=r["target"]) for r in rows}

    def query(self, vector: Sequence[float], limit: int) -> List[TermPair]:
        if self._table is None:
            return []
        # to_arrow() instead of to_pandas(): no pandas dependency
        results = self._table.search(list(vector)).limit(limit).to_arrow()
        return [
            TermPair(source=r["source"], target=r["target"])
            for r in results.select(["source", "target"]).to_pylist()
        ]


# =========================================================
# STORE
# =========================================================
class TermStore:
    def __init__(self, collection: str, index: TermIndex, embedder: Embedder, snapshot_dir):
        self.collection = collection
        self.index = index
        self.embedder = embedder
        self.snapshot_path = Path(snapshot_dir) / f"{collection}.json"

    async def _embed(self, text: str) -> List[float]:
        try:
            vector = await self.embedder.embed(text)
        except Exception as e:
            raise EmbeddingFailure(f"embedding request failed for {text!r}: {e}") from e
        if not vector:
            raise EmbeddingFailure(f"embedding provider returned no vector for {text!r}")
        return list(vector)

    # =====================================================
    # PUBLIC API
    # =====================================================
    async def upsert(self, term: TermPair, *, save: bool = True) -> None:
        """Raises EmbeddingFailure; callers decide whether that is fatal."""
        term = TermPair(source=term.source.strip(), target=term.target.strip())
        if not term.source:
            raise ValueError("term source is empty")

        vector = await self._embed(term.source)
        self.index.upsert(term.key, term, vector)
        log(f"TERM STORE: upserted '{term.key}' -> '{term.target}'")

        if save:
            self.save_snapshot()

    async def search(self, query: str, limit: int) -> List[TermPair]:
        if limit <= 0 or self.index.count() == 0:
            return []
        vector = await self._embed(query)
        return self.index.query(vector, limit)[:limit]

    def export_all(self) -> List[TermPair]:
        return list(self.index.all_terms().values())

    # =====================================================
    # SNAPSHOT
    # =====================================================
    def save_snapshot(self, pending: Sequence[TermPair] = ()) -> None:
        """`pending` entries override the index (terms a later reconcile must retry)."""
        merged = self.index.all_terms()
        for term in pending:
            merged[term.key] = term
        terms = sorted(merged.values(), key=lambda t: (t.source.casefold(), t.source))
        try:
            atomic_write_text(
                self.snapshot_path,
                json.dumps([t.to_json() for t in terms], ensure_ascii=False, indent=2),
            )
        except OSError as e:
            log(f"❌ TERM STORE: snapshot write failed ({self.snapshot_path}): {e}")
            return
        log(f"TERM STORE: snapshot saved | terms={len(terms)} | {self.snapshot_path.name}")

    def load_snapshot(self) -> Optional[List[TermPair]]:
        """None when the file is missing. Invalid entries are skipped."""
        if not self.snapshot_path.exists():
            log(f"⚠️ TERM STORE: no snapshot at {self.snapshot_path}")
            return None

        data = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"snapshot {self.snapshot_path} is not a JSON array")

        terms: List[TermPair] = []
        for entry in data:
            try:
                terms.append(TermPair.model_validate(entry))
            except ValidationError:
                log(f"⚠️ TERM STORE: skipping invalid snapshot entry: {entry!r}")
        return terms

    async def reconcile(self) -> int:
        """
        Push snapshot entries the live index lacks (or holds with a different
        target), then rewrite the snapshot from the index.
        Returns the number of upserted terms.
        """
        log(f"TERM STORE: reconcile start | collection={self.collection}")
        try:
            snapshot = self.load_snapshot()
        except (OSError, ValueError) as e:
            log(f"❌ TERM STORE: unreadable snapshot, leaving it untouched: {e}")
            return 0

        current = self.index.all_terms()
        log(f"TERM STORE: {len(current)} terms in index, {len(snapshot or [])} in snapshot")

        pending = []
        for term in snapshot or []:
            live = current.get(term.key)
            if live is None or live.target != term.target:
                pending.append(term)

        upserted = 0
        failed: List[TermPair] = []
        if pending:
            log(f"TERM STORE: {len(pending)} terms to add or update")
            for term in pending:
                try:
                    await self.upsert(term, save=False)
                    upserted += 1
                except EmbeddingFailure as e:
                    log(f"⚠️ TERM STORE: skipped '{term.source}', kept for next sync: {e}")
                    failed.append(term)
                except ValueError as e:
                    log(f"⚠️ TERM STORE: skipped '{term.source}': {e}")
        else:
            log("TERM STORE: index already in sync with snapshot")

        self.save_snapshot(pending=failed)
        log(f"TERM STORE: reconcile done | upserted={upserted}/{len(pending)}")
        return upserted
