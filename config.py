# config.py
# Paths, languages and pipeline constants.
# Every value can be overridden from the environment (or a .env loaded by the shell).

import os
from pathlib import Path

# =========================================================
# SOURCE NOVEL
# =========================================================
NOVEL_BASE_URL = os.getenv(
    "NOVEL_BASE_URL",
    "https://www.lightnovelworld.com/novel/the-dark-king-16091324",
)
NOVEL_TITLE = os.getenv("NOVEL_TITLE", "The Dark King")
DOMAIN = os.getenv("NOVEL_DOMAIN", "https://www.lightnovelworld.com")
PAGE_FETCH_DELAY_SEC = 0.1

# =========================================================
# DIRECTORIES
# =========================================================
PROCESS_DIR = Path(os.getenv("PROCESS_DIR", "process"))
CHAPTER_CACHE_FILE = PROCESS_DIR / "chapter-cache.json"
SOURCE_CHAPTERS_DIR = PROCESS_DIR / "chapters" / "source"
TRANSLATED_CHAPTERS_DIR = PROCESS_DIR / "chapters" / "translated"
TRANSLATION_STATE_DIR = PROCESS_DIR / "chapters" / "translation-state"
KEYWORDS_DIR = PROCESS_DIR / "keywords"
VECTORSTORE_DIR = PROCESS_DIR / "vectorstore"
LOG_FILE = PROCESS_DIR / "run.log"

# =========================================================
# TRANSLATION
# =========================================================
COLLECTION_NAME = os.getenv("COLLECTION_NAME", "the-dark-king-keywords")
SOURCE_LANGUAGE = os.getenv("SOURCE_LANGUAGE", "English")
TARGET_LANGUAGE = os.getenv("TARGET_LANGUAGE", "Turkish")
TARGET_LANGUAGE_CODE = os.getenv("TARGET_LANGUAGE_CODE", "tr")  # EPUB metadata

CONTEXT_WINDOW = 5           # previous / future lines given to the model
KEYWORD_SEARCH_LIMIT = 20    # existing keywords surfaced per line

MAX_RETRIES = 2              # attempts per line before the sentinel is written
RETRY_DELAY_SEC = 5.0
LINE_DELAY_SEC = 5.0
MAX_CONSECUTIVE_FAILURES = 5

UNTRANSLATED_PREFIX = "NOT TRANSLATED: "

# =========================================================
# MODELS
# =========================================================
TRANSLATION_MODEL = os.getenv("TRANSLATION_MODEL", "gemini-2.5-flash")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-004")
OPENAI_FALLBACK_MODEL = os.getenv("OPENAI_FALLBACK_MODEL", "gpt-4o-mini")
