"""Device-local key-value storage persisted as a JSON object on disk."""
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 5.0


class LocalStoreLockedError(RuntimeError):
    """Raised when the state file stays locked past the timeout."""


class LocalStore:
    """String-valued key-value store that survives process restarts.

    Mirrors the browser ``localStorage`` contract: every value is a string,
    missing keys read as ``None`` and there is no schema versioning. Every
    operation re-reads the file under a lock, so stores sharing a path see
    each other's writes. Writes go to a temporary file that then replaces the
    state file.
    """

    def __init__(self, path: Path, lock_timeout: float = LOCK_TIMEOUT_SECONDS):
        self._path = Path(path)
        self._lock = FileLock(str(self._path.with_name(self._path.name + ".lock")), timeout=lock_timeout)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._lock:
                yield
        except Timeout as exc:
            logger.error("Local state lock timeout at %s: %s", self._path, exc)
            raise LocalStoreLockedError(f"{self._path} is currently locked; please retry.") from exc

    def _read(self) -> dict[str, str]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("root is not an object")
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load local state from %s: %s", self._path, exc)
            return {}
        return {str(k): str(v) for k, v in payload.items() if v is not None}

    def _write(self, items: dict[str, str]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get_item(self, key: str) -> str | None:
        with self._locked():
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._locked():
            items = self._read()
            items[key] = str(value)
            self._write(items)

    def remove_item(self, key: str) -> None:
        with self._locked():
            items = self._read()
            if key in items:
                del items[key]
                self._write(items)

    def clear(self) -> None:
        with self._locked():
            self._write({})

    def keys(self) -> list[str]:
        with self._locked():
            return sorted(self._read())
