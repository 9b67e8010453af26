# engine/pipeline.py
# Chapter pipeline: fetch raw text -> translate, strictly one chapter at a time.
# Every stage is idempotent given the files already on disk, so a rerun
# continues where the last one stopped.

import asyncio
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from pydantic import BaseModel

from engine.chapter_source import ChapterRecord
from engine.chapter_translator import ChapterState, ChapterTranslator
from engine.checkpoint_manager import atomic_write_text
from utils.logger import log


class ChapterSource(Protocol):
    def fetch_raw_text(self, record: ChapterRecord) -> Optional[str]: ...


class PipelineSummary(BaseModel):
    translated: List[int] = []
    already_done: List[int] = []
    skipped: List[int] = []
    incomplete: List[int] = []


class ChapterPipeline:
    def __init__(
        self,
        source: ChapterSource,
        chapter_translator: Optional[ChapterTranslator],
        source_dir,
    ):
        """`chapter_translator` may be None for fetch-only runs (`fetch_sources`)."""
        self.source = source
        self.chapter_translator = chapter_translator
        self.source_dir = Path(source_dir)

    def source_path(self, chapter: int) -> Path:
        return self.source_dir / f"chapter_{chapter}.txt"

    async def ensure_source(self, record: ChapterRecord) -> bool:
        """True when raw text for the chapter is on disk (fetched now or earlier)."""
        path = self.source_path(record.chapter)
        if path.exists():
            log(f"Chapter {record.chapter} already fetched. Skipping download.")
            return True

        log(f"Processing Chapter {record.chapter}: {record.url}")
        text = await asyncio.to_thread(self.source.fetch_raw_text, record)
        if text is None:
            return False

        try:
            atomic_write_text(path, text)
        except OSError as e:
            log(f"❌ Failed to save chapter {record.chapter} to {path}: {e}")
            return False

        log(f"Saved Chapter {record.chapter} to {path}")
        return True

    async def fetch_sources(self, records: Iterable[ChapterRecord]) -> List[int]:
        """Download missing raw chapters only. Returns the chapters now on disk."""
        available = []
        for record in sorted(records, key=lambda r: r.chapter):
            if await self.ensure_source(record):
                available.append(record.chapter)
        log(f"FETCH DONE | available={len(available)}")
        return available

    async def run(self, records: Iterable[ChapterRecord]) -> PipelineSummary:
        """TranslationAborted propagates: it must stop every further chapter."""
        if self.chapter_translator is None:
            raise ValueError("ChapterPipeline.run needs a chapter translator")
        summary = PipelineSummary()

        for record in sorted(records, key=lambda r: r.chapter):
            if self.chapter_translator.is_done(record.chapter):
                summary.already_done.append(record.chapter)
                continue

            if not await self.ensure_source(record):
                log(f"⚠️ Source for chapter {record.chapter} unavailable. Skipping translation.")
                summary.skipped.append(record.chapter)
                continue

            result = await self.chapter_translator.translate_file(
                record.chapter, self.source_path(record.chapter)
            )
            if result.state == ChapterState.FINALIZED:
                summary.translated.append(record.chapter)
            elif result.state == ChapterState.NOT_STARTED:
                summary.skipped.append(record.chapter)
            else:
                summary.incomplete.append(record.chapter)

        log(
            f"PIPELINE DONE | translated={len(summary.translated)} | "
            f"already_done={len(summary.already_done)} | skipped={len(summary.skipped)} | "
            f"incomplete={len(summary.incomplete)}"
        )
        return summary
