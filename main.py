# main.py
# Entry point: scrape the novel chapter list, fetch chapters, translate line by line.
# Resumable at every level: chapter cache, raw chapter files, per-line checkpoints.
#
# Exit codes: 0 done | 1 directory setup failure, unreadable chapter cache, kill-switch

import argparse
import asyncio
import sys

import config
from engine.chapter_source import ChapterCacheError, NovelSource, cache_chapter_list, load_chapter_cache
from engine.chapter_translator import ChapterTranslator, TranslationAborted
from engine.checkpoint_manager import CheckpointManager
from engine.line_translator import LineTranslator
from engine.pipeline import ChapterPipeline
from engine.term_store import GeminiEmbedder, LanceTermIndex, TermStore
from epub.epub_writer import write_epub
from utils.key_rotator import KeyRotator, NoCredentialsError
from utils.logger import log, set_log_file


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Scrape and translate a web novel line by line")
    parser.add_argument("--from-chapter", type=int, default=None, help="first chapter to process")
    parser.add_argument("--to-chapter", type=int, default=None, help="last chapter to process")
    parser.add_argument(
        "--export-epub",
        metavar="PATH",
        default=None,
        help="bundle translated chapters into an EPUB after the run",
    )
    parser.add_argument("--no-translate", action="store_true", help="only fetch chapter sources")
    return parser.parse_args(argv)


def ensure_directories() -> None:
    for path in (
        config.PROCESS_DIR,
        config.SOURCE_CHAPTERS_DIR,
        config.TRANSLATED_CHAPTERS_DIR,
        config.TRANSLATION_STATE_DIR,
        config.KEYWORDS_DIR,
        config.VECTORSTORE_DIR,
    ):
        path.mkdir(parents=True, exist_ok=True)


def select_chapters(records, first=None, last=None):
    return [
        r for r in records
        if (first is None or r.chapter >= first) and (last is None or r.chapter <= last)
    ]


async def run(args) -> int:
    try:
        ensure_directories()
    except OSError as e:
        log(f"❌ Failed to create output directories: {e}")
        return 1
    set_log_file(config.LOG_FILE)
    log("START TRANSLATION PIPELINE")

    source = NovelSource(config.NOVEL_BASE_URL, config.DOMAIN, page_delay=config.PAGE_FETCH_DELAY_SEC)
    await asyncio.to_thread(cache_chapter_list, source, config.CHAPTER_CACHE_FILE)

    log("Reading chapter cache...")
    try:
        chapters = load_chapter_cache(config.CHAPTER_CACHE_FILE)
    except ChapterCacheError as e:
        log(f"❌ {e}")
        return 1
    log(f"Found {len(chapters)} chapters in cache.")

    chapters = select_chapters(chapters, args.from_chapter, args.to_chapter)
    if not chapters:
        log("No chapters to process.")
        return 0

    # fetch-only: no credentials, no keyword index, no model calls
    if args.no_translate:
        await ChapterPipeline(source, None, config.SOURCE_CHAPTERS_DIR).fetch_sources(chapters)
        log("Fetch-only run finished.")
        return 0

    try:
        keys = KeyRotator.from_env()
    except NoCredentialsError as e:
        log(str(e))
        return 1
    log(f"Loaded {len(keys)} Google API key(s)")

    term_store = TermStore(
        config.COLLECTION_NAME,
        LanceTermIndex(config.VECTORSTORE_DIR, config.COLLECTION_NAME),
        GeminiEmbedder(keys, model=config.EMBEDDING_MODEL),
        config.KEYWORDS_DIR,
    )

    log("Performing initial keyword sync + backup...")
    try:
        await term_store.reconcile()
    except Exception as e:
        log(f"❌ Keyword sync failed, continuing with the live index as-is: {e}")

    translator = LineTranslator(
        keys,
        source_language=config.SOURCE_LANGUAGE,
        target_language=config.TARGET_LANGUAGE,
        model=config.TRANSLATION_MODEL,
        fallback_model=config.OPENAI_FALLBACK_MODEL,
    )
    chapter_translator = ChapterTranslator(
        translator,
        term_store,
        CheckpointManager(config.TRANSLATION_STATE_DIR, config.TRANSLATED_CHAPTERS_DIR),
    )
    pipeline = ChapterPipeline(source, chapter_translator, config.SOURCE_CHAPTERS_DIR)

    log("Starting chapter processing and translation...")
    try:
        await pipeline.run(chapters)
    except TranslationAborted as e:
        log(f"❌ KILL-SWITCH: {e}. Exiting.")
        return 1

    if args.export_epub:
        write_epub(
            args.export_epub,
            config.TRANSLATED_CHAPTERS_DIR,
            [r.chapter for r in chapters],
            title=config.NOVEL_TITLE,
            language=config.TARGET_LANGUAGE_CODE,
        )

    log("Processing and translation finished.")
    return 0


def main(argv=None) -> None:
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
