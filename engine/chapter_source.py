# engine/chapter_source.py
# Chapter list scraping + raw chapter text extraction (lightnovelworld layout).
#
# - list_chapters(): paginated, stops on an empty page / HTTP error
# - fetch_raw_text(): #chapter-container <p> texts, ads removed, "\n\n"-joined
# - chapter cache: JSON list of {chapter, url}, sorted by chapter

import json
import time
from pathlib import Path
from typing import List, Optional

import requests
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from utils.logger import log

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class ChapterCacheError(RuntimeError):
    pass


class ChapterRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    chapter: int = Field(ge=1)
    url: str


# =========================================================
# HTML EXTRACTION (pure, no network)
# =========================================================
def parse_chapter_links(html: str, domain: str) -> List[ChapterRecord]:
    soup = BeautifulSoup(html, "html.parser")
    records = []
    for link in soup.select("li[data-chapterno] a"):
        li = link.find_parent("li")
        chapter_no = li.get("data-chapterno") if li else None
        href = link.get("href")
        if not chapter_no or not href:
            continue
        try:
            records.append(ChapterRecord(chapter=int(chapter_no), url=domain + href))
        except (ValueError, ValidationError):
            log(f"⚠️ SOURCE: ignoring chapter link with bad number {chapter_no!r}")
    return records


def extract_chapter_text(html: str) -> Optional[str]:
    """None when the content container is missing."""
    soup = BeautifulSoup(html, "html.parser")
    container = soup.find(id="chapter-container")
    if container is None:
        return None

    for ad in container.select("div.vnad-in"):
        ad.decompose()

    paragraphs = [p.get_text().strip() for p in container.find_all("p")]
    return "\n\n".join(text for text in paragraphs if text)


# =========================================================
# NETWORK
# =========================================================
class NovelSource:
    def __init__(self, base_url: str, domain: str, *, page_delay: float = 0.1, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.domain = domain.rstrip("/")
        self.page_delay = page_delay
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def list_chapters(self) -> List[ChapterRecord]:
        log(f"SOURCE: fetching chapters from {self.base_url}/chapters")
        chapters: List[ChapterRecord] = []
        page = 1

        while True:
            page_url = f"{self.base_url}/chapters?page={page}"
            log(f"SOURCE: fetching page {page}: {page_url}")
            try:
                response = self.session.get(page_url, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                log(f"❌ SOURCE: error fetching page {page}: {e}")
                break

            if not response.ok:
                log(f"⚠️ SOURCE: page {page} returned {response.status_code}. Assuming end of chapters.")
                break

            found = parse_chapter_links(response.text, self.domain)
            if not found:
                log(f"SOURCE: no chapters on page {page}. End of list.")
                break

            chapters.extend(found)
            page += 1
            time.sleep(self.page_delay)

        return sorted(chapters, key=lambda r: r.chapter)

    def fetch_raw_text(self, record: ChapterRecord) -> Optional[str]:
        """None (logged) when the chapter cannot be fetched; the caller skips it."""
        try:
            response = self.session.get(record.url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            log(f"❌ SOURCE: error fetching chapter {record.chapter}: {e}")
            return None

        if not response.ok:
            log(f"❌ SOURCE: failed to fetch chapter {record.chapter}. Status: {response.status_code}")
            return None

        text = extract_chapter_text(response.text)
        if text is None:
            log(f"❌ SOURCE: could not find #chapter-container for chapter {record.chapter}")
            return None
        if not text:
            log(f"⚠️ SOURCE: no paragraph text found for chapter {record.chapter}")
            return None
        return text


# =========================================================
# CHAPTER CACHE
# =========================================================
def load_chapter_cache(path) -> List[ChapterRecord]:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        records = [ChapterRecord.model_validate(item) for item in data]
    except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
        raise ChapterCacheError(f"failed to read or parse chapter cache {path}: {e}") from e
    return sorted(records, key=lambda r: r.chapter)


def save_chapter_cache(path, records: List[ChapterRecord]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ordered = sorted(records, key=lambda r: r.chapter)
    path.write_text(
        json.dumps([r.model_dump() for r in ordered], ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    log(f"SOURCE: cached {len(ordered)} chapters to {path}")


def cache_chapter_list(source: NovelSource, path) -> bool:
    """Scrape the chapter list unless the cache exists. True if a cache was written."""
    path = Path(path)
    if path.exists():
        log(f"SOURCE: chapter cache already exists at {path}. Skipping.")
        return False

    log("SOURCE: chapter cache not found. Fetching chapter list...")
    records = source.list_chapters()
    if not records:
        log("⚠️ SOURCE: no chapters found to cache.")
        return False

    try:
        save_chapter_cache(path, records)
    except OSError as e:
        log(f"❌ SOURCE: error writing chapter cache file: {e}")
        return False
    return True
