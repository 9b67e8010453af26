import pytest

from engine.chapter_source import ChapterRecord, NovelSource, save_chapter_cache
from main import parse_args, run, select_chapters


def test_parse_args_defaults():
    args = parse_args([])
    assert args.from_chapter is None
    assert args.to_chapter is None
    assert args.export_epub is None
    assert args.no_translate is False


def test_parse_args_flags():
    args = parse_args(["--from-chapter", "3", "--to-chapter", "7", "--export-epub", "book.epub"])
    assert (args.from_chapter, args.to_chapter, args.export_epub) == (3, 7, "book.epub")


def test_select_chapters_range():
    chapters = [ChapterRecord(chapter=n, url=f"u{n}") for n in range(1, 6)]

    assert [r.chapter for r in select_chapters(chapters, 2, 4)] == [2, 3, 4]
    assert [r.chapter for r in select_chapters(chapters, None, 2)] == [1, 2]
    assert select_chapters(chapters) == chapters


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Process dirs under tmp_path, a one-chapter cache, no Google credentials."""
    import config

    monkeypatch.delenv("GOOGLE_API_KEYS", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    for name in (
        "PROCESS_DIR",
        "SOURCE_CHAPTERS_DIR",
        "TRANSLATED_CHAPTERS_DIR",
        "TRANSLATION_STATE_DIR",
        "KEYWORDS_DIR",
        "VECTORSTORE_DIR",
    ):
        monkeypatch.setattr(config, name, tmp_path / name.lower())
    monkeypatch.setattr(config, "LOG_FILE", tmp_path / "run.log")
    monkeypatch.setattr("utils.logger._LOG_FILE", None)

    cache = tmp_path / "chapter-cache.json"
    save_chapter_cache(cache, [ChapterRecord(chapter=1, url="https://novels.example/c1")])
    monkeypatch.setattr(config, "CHAPTER_CACHE_FILE", cache)
    return config


@pytest.mark.asyncio
async def test_missing_credentials_exit_code(workspace, tmp_path):
    assert await run(parse_args([])) == 1
    assert (tmp_path / "run.log").exists()


@pytest.mark.asyncio
async def test_fetch_only_needs_no_credentials(workspace, monkeypatch):
    fetched = []

    def fake_fetch(self, record):
        fetched.append(record.chapter)
        return "Leon opened his eyes."

    monkeypatch.setattr(NovelSource, "fetch_raw_text", fake_fetch)

    assert await run(parse_args(["--no-translate"])) == 0
    assert fetched == [1]
    assert (workspace.SOURCE_CHAPTERS_DIR / "chapter_1.txt").read_text(encoding="utf-8") == (
        "Leon opened his eyes."
    )
    assert not any(workspace.VECTORSTORE_DIR.iterdir())
