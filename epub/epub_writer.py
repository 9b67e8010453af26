# epub/epub_writer.py
# Bundle finalized chapter translations into one EPUB book.
import html
from pathlib import Path
from typing import List, Optional

from ebooklib import epub
from utils.logger import log

BOOK_CSS = """
p {
    margin-top: 0;
    margin-bottom: 0.8em;
    text-indent: 1.2em;
    line-height: 1.6;
}
p.deco {
    text-align: center;
    text-indent: 0;
}
"""


def chapter_to_html(title: str, text: str) -> str:
    parts = [f"<h2>{html.escape(title)}</h2>"]
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        css_class = ' class="deco"' if not any(c.isalnum() for c in stripped) else ""
        parts.append(f"<p{css_class}>{html.escape(stripped)}</p>")
    return "\n".join(parts)


def write_epub(
        output_path,
        translated_dir,
        chapters: List[int],
        *,
        title: str,
        language: str,
        author: Optional[str] = None,
        chapter_label: str = "Chapter",
) -> int:
    """
    Write every chapter in `chapters` that has a finalized translation.
    Returns the number of chapters included.
    """
    translated_dir = Path(translated_dir)

    book = epub.EpubBook()
    book.set_identifier(f"novel-{title.lower().replace(' ', '-')}")
    book.set_title(title)
    book.set_language(language)
    if author:
        book.add_author(author)

    style = epub.EpubItem(
        uid="style_book",
        file_name="styles/book.css",
        media_type="text/css",
        content=BOOK_CSS,
    )
    book.add_item(style)

    items = []
    for chapter in sorted(chapters):
        path = translated_dir / f"chapter_{chapter}.txt"
        if not path.exists():
            log(f"EPUB: chapter {chapter} not translated yet, skipped")
            continue

        chapter_title = f"{chapter_label} {chapter}"
        item = epub.EpubHtml(
            title=chapter_title,
            file_name=f"text/chapter_{chapter}.xhtml",
            lang=language,
        )
        item.content = chapter_to_html(chapter_title, path.read_text(encoding="utf-8"))
        item.add_item(style)
        book.add_item(item)
        items.append(item)

    if not items:
        log("⚠️ EPUB: no translated chapters found, nothing written")
        return 0

    book.toc = items
    book.spine = ["nav"] + items
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    epub.write_epub(str(output_path), book)
    log(f"EPUB WRITTEN: {output_path} | chapters={len(items)}")
    return len(items)
