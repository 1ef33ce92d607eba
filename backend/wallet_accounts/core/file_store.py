"""JSON file key-value store for single-user local installs.

Each key is one file in the data directory. Writes go to a temporary file
that is renamed over the target, so a crash mid-write leaves the previous
value intact.
"""

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Any, Optional

# Secure file permissions (Unix only)
SECURE_FILE_MODE = 0o600  # Owner read/write only

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


def _set_secure_permissions(filepath: Path) -> None:
    """Set restrictive file permissions on Unix systems."""
    if os.name == "posix":
        try:
            os.chmod(filepath, SECURE_FILE_MODE)
        except OSError:
            pass


class JsonFileStore:
    """Key-value store with one JSON document per key."""

    def __init__(self, data_dir: Path, prefix: str = "wallet_accounts"):
        self.data_dir = Path(data_dir)
        self.prefix = prefix

    def path_for(self, key: str) -> Path:
        safe = _SAFE_KEY.sub("_", f"{self.prefix}.{key}")
        return self.data_dir / f"{safe}.json"

    def _read(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: Any) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2, default=str)
        _set_secure_permissions(tmp_path)
        os.replace(tmp_path, path)

    def _delete(self, key: str) -> None:
        path = self.path_for(key)
        if path.exists():
            path.unlink()

    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None when the key is absent."""
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        """Overwrite the value stored under key."""
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        """Delete key."""
        await asyncio.to_thread(self._delete, key)

    async def ping(self) -> bool:
        return self.data_dir.exists() or self.data_dir.parent.exists()
