# engine/chapter_translator.py
# ============================================================
# CHAPTER TRANSLATION STATE MACHINE
#
#   NOT_STARTED -> IN_PROGRESS -> FINALIZED
#                       \-> ABORTED   (consecutive-failure kill-switch)
#
# INVARIANTS:
# 1. len(checkpoint) == resume cursor; checkpoint persisted after EVERY line.
# 2. Context window after resume == context window of an uninterrupted run.
# 3. Finalized output exists -> zero model calls, output untouched.
# 4. Decoration / blank lines never reach the model.
# 5. Exactly one delay between two consecutive model attempts:
#    RETRY delay inside a line, LINE delay after a line that called the model.
# ============================================================

import asyncio
import re
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List

from pydantic import BaseModel

import config
from engine.checkpoint_manager import CheckpointCorrupt, CheckpointManager, CheckpointNotFound
from engine.context_window import ContextEntry, ContextWindow, is_decoration, lookahead
from engine.line_translator import Translator
from engine.term_store import TermStore
from utils.logger import log

Sleep = Callable[[float], Awaitable[None]]


class ChapterState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    FINALIZED = "FINALIZED"
    ABORTED = "ABORTED"


class TranslationAborted(RuntimeError):
    """Too many consecutive lines exhausted their retries: treat as provider outage."""

    def __init__(self, chapter: int, line_number: int, failures: int):
        self.chapter = chapter
        self.line_number = line_number
        self.failures = failures
        self.state = ChapterState.ABORTED
        super().__init__(
            f"{failures} consecutive translation failures "
            f"(chapter {chapter}, line {line_number})"
        )


class ChapterResult(BaseModel):
    chapter: int
    state: ChapterState
    translated_lines: List[str] = []
    model_calls: int = 0
    resumed_from: int = 0


def split_lines(text: str) -> List[str]:
    if not text:
        return []
    return re.split(r"\r?\n", text)


class ChapterTranslator:
    def __init__(
        self,
        translator: Translator,
        term_store: TermStore,
        checkpoints: CheckpointManager,
        *,
        window_size: int = config.CONTEXT_WINDOW,
        keyword_limit: int = config.KEYWORD_SEARCH_LIMIT,
        max_retries: int = config.MAX_RETRIES,
        retry_delay: float = config.RETRY_DELAY_SEC,
        line_delay: float = config.LINE_DELAY_SEC,
        max_consecutive_failures: int = config.MAX_CONSECUTIVE_FAILURES,
        untranslated_prefix: str = config.UNTRANSLATED_PREFIX,
        sleep: Sleep = asyncio.sleep,
    ):
        self.translator = translator
        self.term_store = term_store
        self.checkpoints = checkpoints
        self.window_size = window_size
        self.keyword_limit = keyword_limit
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.line_delay = line_delay
        self.max_consecutive_failures = max_consecutive_failures
        self.untranslated_prefix = untranslated_prefix
        self.sleep = sleep

    # =========================================================
    # ENTRY POINTS
    # =========================================================
    async def translate_file(self, chapter: int, source_path) -> ChapterResult:
        if self.is_done(chapter):
            return ChapterResult(chapter=chapter, state=ChapterState.FINALIZED)

        try:
            text = Path(source_path).read_text(encoding="utf-8")
        except FileNotFoundError:
            log(f"⚠️ Source file {source_path} not found. Skipping chapter {chapter}.")
            return ChapterResult(chapter=chapter, state=ChapterState.NOT_STARTED)
        except (OSError, UnicodeDecodeError) as e:
            log(f"❌ Failed to read source file {source_path}: {e}. Skipping chapter {chapter}.")
            return ChapterResult(chapter=chapter, state=ChapterState.NOT_STARTED)

        return await self.translate_chapter(chapter, text)

    async def translate_chapter(self, chapter: int, text: str) -> ChapterResult:
        log(f"--- Translating Chapter {chapter} ---")

        if self.is_done(chapter):
            return ChapterResult(chapter=chapter, state=ChapterState.FINALIZED)

        source_lines = split_lines(text)
        if not source_lines:
            log(f"Chapter {chapter} source is empty. Writing empty translation.")
            try:
                self.checkpoints.finalize(chapter, [])
            except OSError as e:
                log(f"❌ Failed to write empty translation for chapter {chapter}: {e}")
                return ChapterResult(chapter=chapter, state=ChapterState.NOT_STARTED)
            self.checkpoints.delete(chapter)
            return ChapterResult(chapter=chapter, state=ChapterState.FINALIZED)

        translated_lines, window = self._resume(chapter, source_lines)
        result = ChapterResult(
            chapter=chapter,
            state=ChapterState.IN_PROGRESS,
            resumed_from=len(translated_lines),
        )

        consecutive_failures = 0
        total = len(source_lines)

        for i in range(len(translated_lines), total):
            original = source_lines[i]

            if is_decoration(original):
                output = original
                log(f"Skipping line {i + 1} (decoration) of Chapter {chapter}")
            elif not original.strip():
                output = ""
            else:
                log(f"Translating line {i + 1}/{total} of Chapter {chapter}")
                output, calls, ok = await self._translate_line(chapter, i, source_lines, window)
                result.model_calls += calls

                if ok:
                    consecutive_failures = 0
                else:
                    consecutive_failures += 1
                    if consecutive_failures >= self.max_consecutive_failures:
                        log(
                            f"❌ ERROR: {consecutive_failures} consecutive translation failures "
                            f"detected in chapter {chapter}. Stopping."
                        )
                        raise TranslationAborted(chapter, i + 1, consecutive_failures)

                await self.sleep(self.line_delay)

            translated_lines.append(output)
            self._save_checkpoint(chapter, translated_lines, i)

        # ---------- FINALIZE ----------
        result.translated_lines = translated_lines
        try:
            self.checkpoints.finalize(chapter, translated_lines)
        except OSError as e:
            # checkpoint kept: the next run finalizes without model calls
            log(f"❌ Failed to write translated chapter {chapter}: {e}")
            return result
        self.checkpoints.delete(chapter)

        result.state = ChapterState.FINALIZED
        log(f"✅ Chapter {chapter} translated | lines={total} | model_calls={result.model_calls}")
        return result

    # =========================================================
    # STATE HELPERS
    # =========================================================
    def is_done(self, chapter: int) -> bool:
        """Finalized output exists. Removes a stray checkpoint left next to it."""
        if not self.checkpoints.is_finalized(chapter):
            return False
        log(f"Chapter {chapter} already fully translated. Skipping.")
        if self.checkpoints.delete(chapter):
            log(f"Cleaned up stray state file for chapter {chapter}.")
        return True

    def _resume(self, chapter: int, source_lines: List[str]):
        try:
            translated = self.checkpoints.load(chapter)
        except CheckpointNotFound:
            log(f"No existing translation state for chapter {chapter}. Starting fresh.")
            return [], ContextWindow(self.window_size)
        except CheckpointCorrupt as e:
            log(f"❌ Corrupt state file for chapter {chapter}. Starting fresh. Error: {e}")
            return [], ContextWindow(self.window_size)
        except (OSError, UnicodeDecodeError) as e:
            log(f"❌ Error reading state file for chapter {chapter}. Starting fresh. Error: {e}")
            return [], ContextWindow(self.window_size)

        if len(translated) > len(source_lines):
            log(
                f"❌ State file for chapter {chapter} has {len(translated)} lines but source has "
                f"{len(source_lines)}. Starting fresh."
            )
            return [], ContextWindow(self.window_size)

        window = ContextWindow.rebuild(
            translated, source_lines, self.window_size, self.untranslated_prefix
        )
        log(
            f"Resuming translation for chapter {chapter} from line {len(translated) + 1} "
            f"| context entries={len(window)}"
        )
        return translated, window

    def _save_checkpoint(self, chapter: int, translated_lines: List[str], index: int) -> None:
        try:
            self.checkpoints.save(chapter, translated_lines)
        except OSError as e:
            # Best effort: a crash right now would cost this one line
            log(f"❌ Failed to save translation state for chapter {chapter} after line {index + 1}: {e}")

    # =========================================================
    # ONE LINE (RETRY UNIT)
    # =========================================================
    async def _translate_line(
        self,
        chapter: int,
        index: int,
        source_lines: List[str],
        window: ContextWindow,
    ):
        """Returns (output line, model calls made, success)."""
        current_line = source_lines[index].strip()
        future_lines = lookahead(source_lines, index, self.window_size)
        calls = 0

        for attempt in range(1, self.max_retries + 1):
            try:
                existing_terms = await self.term_store.search(current_line, self.keyword_limit)
                calls += 1
                result = await self.translator.translate(
                    existing_terms, window.entries(), current_line, future_lines
                )
            except Exception as e:
                log(
                    f"❌ Error translating line {index + 1} of Chapter {chapter} "
                    f"(Attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries:
                    log(f"Retrying in {self.retry_delay:g} seconds...")
                    await self.sleep(self.retry_delay)
                continue

            await self._store_new_terms(chapter, index, result.new_terms)
            window.append(ContextEntry(source=current_line, target=result.translated_line))
            return result.translated_line, calls, True

        log(f"❌ Max retries reached for line {index + 1}. Marking as untranslated.")
        return f"{self.untranslated_prefix}{current_line}", calls, False

    async def _store_new_terms(self, chapter: int, index: int, terms) -> int:
        if not terms:
            return 0
        log(f"Adding {len(terms)} new keywords for Chapter {chapter}, Line {index + 1}")
        stored = 0
        for term in terms:
            try:
                await self.term_store.upsert(term)
                stored += 1
            except Exception as e:
                log(f"⚠️ Failed to add keyword \"{term.source}\": \"{term.target}\" ({e})")
        return stored
