"""TermStore on a real on-disk LanceDB table."""

import pytest

from conftest import FakeEmbedder
from engine.term_store import LanceTermIndex, TermPair, TermStore


def make_store(tmp_path, embedder=None) -> TermStore:
    return TermStore(
        "kw",
        LanceTermIndex(tmp_path / "vectorstore", "kw"),
        embedder or FakeEmbedder(),
        tmp_path / "keywords",
    )


class TestLanceTermIndex:
    def test_empty_index(self, tmp_path):
        index = LanceTermIndex(tmp_path / "vectorstore", "kw")
        assert index.count() == 0
        assert index.all_terms() == {}
        assert index.query([0.0] * 27, 5) == []

    @pytest.mark.asyncio
    async def test_normalized_key_collision_is_one_row(self, tmp_path):
        store = make_store(tmp_path)

        await store.upsert(TermPair(source="Sorcerer", target="Büyücü"))
        await store.upsert(TermPair(source=" sorcerer ", target="Sihirbaz"))

        assert store.index.count() == 1
        assert store.index.all_terms() == {
            "sorcerer": TermPair(source="sorcerer", target="Sihirbaz")
        }

    @pytest.mark.asyncio
    async def test_terms_survive_reopen(self, tmp_path):
        store = make_store(tmp_path)
        await store.upsert(TermPair(source="Sorcerer", target="Sihirbaz"))
        await store.upsert(TermPair(source="Tower", target="Kule"))

        reopened = make_store(tmp_path)

        assert {t.target for t in reopened.export_all()} == {"Sihirbaz", "Kule"}
        # merge on the reopened table still replaces by key
        await reopened.upsert(TermPair(source="TOWER", target="Burç"))
        assert reopened.index.count() == 2

    @pytest.mark.asyncio
    async def test_search_nearest_first(self, tmp_path):
        store = make_store(tmp_path)
        for source, target in [("Tower", "Kule"), ("Sorcerer", "Sihirbaz"), ("Sword", "Kılıç")]:
            await store.upsert(TermPair(source=source, target=target))

        results = await store.search("sorcerers", 2)

        assert len(results) == 2
        assert results[0] == TermPair(source="Sorcerer", target="Sihirbaz")
