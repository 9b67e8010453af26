"""Tests for the sequential chapter pipeline."""

import pytest

from conftest import ScriptedTranslator
from engine.chapter_source import ChapterRecord
from engine.chapter_translator import ChapterTranslator, TranslationAborted
from engine.pipeline import ChapterPipeline


class FakeSource:
    def __init__(self, texts):
        self.texts = texts
        self.fetched = []

    def fetch_raw_text(self, record):
        self.fetched.append(record.chapter)
        return self.texts.get(record.chapter)


def records(*chapters):
    return [ChapterRecord(chapter=c, url=f"https://novels.example/c{c}") for c in chapters]


@pytest.fixture
def translator():
    return ScriptedTranslator(fails=lambda line, attempt: line.startswith("FAIL"))


@pytest.fixture
def make_pipeline(tmp_path, translator, term_store, checkpoints, sleep):
    def build(texts):
        chapter_translator = ChapterTranslator(
            translator,
            term_store,
            checkpoints,
            retry_delay=0,
            line_delay=0,
            max_consecutive_failures=2,
            sleep=sleep,
        )
        source = FakeSource(texts)
        return ChapterPipeline(source, chapter_translator, tmp_path / "source"), source

    return build


@pytest.mark.asyncio
async def test_chapters_run_in_order(make_pipeline, translator, checkpoints):
    pipeline, source = make_pipeline({1: "One.", 2: "Two.", 3: "Three."})

    summary = await pipeline.run(records(3, 1, 2))

    assert summary.translated == [1, 2, 3]
    assert source.fetched == [1, 2, 3]
    assert [c["line"] for c in translator.calls] == ["One.", "Two.", "Three."]
    assert checkpoints.output_path(2).read_text(encoding="utf-8") == "TR(Two.)"


@pytest.mark.asyncio
async def test_unavailable_source_is_skipped(make_pipeline, checkpoints):
    pipeline, _ = make_pipeline({2: "Two."})

    summary = await pipeline.run(records(1, 2))

    assert summary.skipped == [1]
    assert summary.translated == [2]
    assert not checkpoints.is_finalized(1)


@pytest.mark.asyncio
async def test_existing_source_not_refetched(make_pipeline):
    pipeline, source = make_pipeline({})
    pipeline.source_path(4).parent.mkdir(parents=True)
    pipeline.source_path(4).write_text("Cached.", encoding="utf-8")

    summary = await pipeline.run(records(4))

    assert source.fetched == []
    assert summary.translated == [4]


@pytest.mark.asyncio
async def test_finalized_chapter_untouched(make_pipeline, translator, checkpoints):
    checkpoints.finalize(1, ["done"])
    checkpoints.save(1, ["stale"])
    pipeline, source = make_pipeline({1: "One."})

    summary = await pipeline.run(records(1))

    assert summary.already_done == [1]
    assert source.fetched == []
    assert translator.calls == []
    assert not checkpoints.checkpoint_path(1).exists()
    assert checkpoints.output_path(1).read_text(encoding="utf-8") == "done"


@pytest.mark.asyncio
async def test_abort_stops_later_chapters(make_pipeline, checkpoints):
    pipeline, source = make_pipeline({1: "FAIL a\nFAIL b\nFAIL c", 2: "Two."})

    with pytest.raises(TranslationAborted):
        await pipeline.run(records(1, 2))

    assert source.fetched == [1]
    assert not checkpoints.is_finalized(1)
    assert checkpoints.load(1) == ["NOT TRANSLATED: FAIL a"]


@pytest.mark.asyncio
async def test_fetch_sources_without_translator(tmp_path):
    source = FakeSource({1: "One.", 3: "Three."})
    pipeline = ChapterPipeline(source, None, tmp_path / "source")

    available = await pipeline.fetch_sources(records(3, 2, 1))

    assert available == [1, 3]
    assert pipeline.source_path(3).read_text(encoding="utf-8") == "Three."
    # written through a temp file that is renamed into place
    assert sorted(p.name for p in (tmp_path / "source").iterdir()) == [
        "chapter_1.txt",
        "chapter_3.txt",
    ]


@pytest.mark.asyncio
async def test_run_requires_translator(tmp_path):
    pipeline = ChapterPipeline(FakeSource({}), None, tmp_path / "source")
    with pytest.raises(ValueError):
        await pipeline.run(records(1))


@pytest.mark.asyncio
async def test_interrupted_source_write_is_not_treated_as_fetched(tmp_path, monkeypatch):
    source = FakeSource({1: "One."})
    pipeline = ChapterPipeline(source, None, tmp_path / "source")

    def crash(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("engine.checkpoint_manager.os.replace", crash)
    assert await pipeline.ensure_source(records(1)[0]) is False
    assert not pipeline.source_path(1).exists()

    monkeypatch.undo()
    assert await pipeline.ensure_source(records(1)[0]) is True
    assert source.fetched == [1, 1]
