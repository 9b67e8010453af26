# utils/key_rotator.py
# Round-robin API key selection, one cursor per operation category
# ("translate", "embed", ...). No globals: main.py owns the instance.

import os
from typing import Dict, List


class NoCredentialsError(RuntimeError):
    pass


class KeyRotator:
    def __init__(self, keys: List[str]):
        self._keys = [k.strip() for k in keys if k and k.strip()]
        if not self._keys:
            raise NoCredentialsError("❌ No API keys configured (set GOOGLE_API_KEY or GOOGLE_API_KEYS)")
        self._cursors: Dict[str, int] = {}

    @classmethod
    def from_env(cls, multi_var: str = "GOOGLE_API_KEYS", single_var: str = "GOOGLE_API_KEY") -> "KeyRotator":
        raw = os.getenv(multi_var) or os.getenv(single_var) or ""
        return cls(raw.split(","))

    def next(self, category: str) -> str:
        cursor = self._cursors.get(category, 0)
        key = self._keys[cursor % len(self._keys)]
        self._cursors[category] = (cursor + 1) % len(self._keys)
        return key

    def __len__(self) -> int:
        return len(self._keys)
