# utils/logger.py
import datetime
from pathlib import Path
from typing import Optional

_LOG_FILE: Optional[Path] = None


def set_log_file(path) -> None:
    """Mirror every log line into `path` (None disables mirroring)."""
    global _LOG_FILE
    _LOG_FILE = Path(path) if path else None
    if _LOG_FILE is not None:
        _LOG_FILE.parent.mkdir(parents=True, exist_ok=True)


def log(msg: str):
    ts = datetime.datetime.now().strftime("%H:%M:%S")
    line = f"[{ts}] {msg}"
    print(line)

    if _LOG_FILE is not None:
        try:
            with open(_LOG_FILE, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            print(f"[{ts}] ⚠️ LOG FILE WRITE FAILED: {e}")
