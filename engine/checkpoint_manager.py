# engine/checkpoint_manager.py
# Per-chapter translation checkpoint + finalized output files.
#
# - checkpoint: JSON array of translated lines; its length IS the resume cursor
# - finalized:  newline-joined translation; its existence means "chapter done"
# - every write goes through a temp file + os.replace (no half-written files)

import json
import os
from pathlib import Path
from typing import List

from utils.logger import log


class CheckpointNotFound(FileNotFoundError):
    pass


class CheckpointCorrupt(ValueError):
    pass


def atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


class CheckpointManager:
    def __init__(self, state_dir, translated_dir):
        self.state_dir = Path(state_dir)
        self.translated_dir = Path(translated_dir)

    def checkpoint_path(self, chapter: int) -> Path:
        return self.state_dir / f"chapter_{chapter}.json"

    def output_path(self, chapter: int) -> Path:
        return self.translated_dir / f"chapter_{chapter}.txt"

    # =====================================================
    # CHECKPOINT
    # =====================================================
    def load(self, chapter: int) -> List[str]:
        """Raises CheckpointNotFound / CheckpointCorrupt (OSError for IO problems)."""
        path = self.checkpoint_path(chapter)
        if not path.exists():
            raise CheckpointNotFound(str(path))

        raw = path.read_text(encoding="utf-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CheckpointCorrupt(f"{path}: invalid JSON ({e})") from e

        if not isinstance(data, list) or not all(isinstance(x, str) for x in data):
            raise CheckpointCorrupt(f"{path}: expected a JSON array of strings")
        return data

    def save(self, chapter: int, translated_lines: List[str]) -> None:
        atomic_write_text(
            self.checkpoint_path(chapter),
            json.dumps(translated_lines, ensure_ascii=False, indent=2),
        )

    def delete(self, chapter: int) -> bool:
        """True if a checkpoint was removed. Missing file is not an error."""
        try:
            self.checkpoint_path(chapter).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            log(f"⚠️ CHECKPOINT: could not delete state for chapter {chapter}: {e}")
            return False
        log(f"CHECKPOINT: deleted state for chapter {chapter}")
        return True

    # =====================================================
    # FINALIZED OUTPUT
    # =====================================================
    def is_finalized(self, chapter: int) -> bool:
        return self.output_path(chapter).exists()

    def finalize(self, chapter: int, translated_lines: List[str]) -> Path:
        path = self.output_path(chapter)
        atomic_write_text(path, "\n".join(translated_lines))
        log(f"CHECKPOINT: chapter {chapter} finalized -> {path}")
        return path
