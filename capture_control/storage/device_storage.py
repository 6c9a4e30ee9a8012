"""Directory-backed media storage.

Implements the :class:`~capture_control.camera.hardware.DeviceStorage`
protocol on a local directory. Drivers that write recordings through their
own file handle call :meth:`LocalDeviceStorage.mark_modified` once the file
is closed, which produces the ``modified`` notification the record
controller waits for.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path
from typing import Callable, List, Optional

import aiofiles

from capture_control.camera.hardware import (
    STORAGE_AVAILABLE,
    STORAGE_CREATED,
    STORAGE_DELETED,
    STORAGE_MODIFIED,
    STORAGE_SHARED,
    STORAGE_UNAVAILABLE,
    StorageChange,
    StorageListener,
)
from capture_control.core.errors import StorageWriteFailure
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger


class LocalDeviceStorage:
    def __init__(self, root: Path, *, name: str = "", logger: LoggerLike = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self.name = name or self.root.name
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._listeners: List[StorageListener] = []
        self._shared = False

    # ------------------------------------------------------------------
    # Paths

    def resolve(self, path: str) -> Path:
        """Absolute filesystem path for ``path``; rejects paths escaping the root."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        candidate = Path(os.path.normpath(candidate))
        if candidate != self.root and self.root not in candidate.parents:
            raise StorageWriteFailure(f"Path {path!r} is outside storage {self.name}")
        return candidate

    def relative(self, absolute_path: str) -> str:
        return self.resolve(absolute_path).relative_to(self.root).as_posix()

    # ------------------------------------------------------------------
    # Storage operations

    async def add_named(self, blob: bytes, path: str) -> str:
        if self._shared:
            raise StorageWriteFailure(f"Storage {self.name} is shared and read-only")
        target = self.resolve(path)
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            async with aiofiles.open(target, "xb") as fh:
                await fh.write(blob)
        except FileExistsError as exc:
            raise StorageWriteFailure(f"{path} already exists", cause=exc) from exc
        except OSError as exc:
            raise StorageWriteFailure(f"Failed to write {path}: {exc}", cause=exc) from exc

        self._logger.debug("Stored %d bytes at %s", len(blob), target)
        self._notify(StorageChange(STORAGE_CREATED, str(target)))
        return str(target)

    async def get(self, path: str) -> bytes:
        target = self.resolve(path)
        async with aiofiles.open(target, "rb") as fh:
            return await fh.read()

    async def delete(self, path: str) -> None:
        target = self.resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            self._logger.debug("Delete of missing file %s ignored", target)
            return
        self._notify(StorageChange(STORAGE_DELETED, str(target)))

    async def free_space(self) -> int:
        return await asyncio.to_thread(self._free_space_sync)

    def _free_space_sync(self) -> int:
        existing = self.root
        while not existing.exists() and existing != existing.parent:
            existing = existing.parent
        return int(shutil.disk_usage(existing).free)

    async def available(self) -> str:
        if self._shared:
            return STORAGE_SHARED
        ok = await asyncio.to_thread(self._is_usable)
        return STORAGE_AVAILABLE if ok else STORAGE_UNAVAILABLE

    def _is_usable(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.W_OK)

    async def enumerate(self, prefix: str = "") -> List[str]:
        base = self.resolve(prefix) if prefix else self.root

        def _walk() -> List[str]:
            if not base.exists():
                return []
            return sorted(
                p.relative_to(self.root).as_posix() for p in base.rglob("*") if p.is_file()
            )

        return await asyncio.to_thread(_walk)

    # ------------------------------------------------------------------
    # Notifications

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def mark_modified(self, path: str) -> None:
        self._notify(StorageChange(STORAGE_MODIFIED, str(self.resolve(path))))

    def mark_shared(self) -> None:
        self._shared = True
        self._notify(StorageChange(STORAGE_SHARED))

    def mark_available(self) -> None:
        self._shared = False
        self.root.mkdir(parents=True, exist_ok=True)
        self._notify(StorageChange(STORAGE_AVAILABLE))

    def mark_unavailable(self) -> None:
        self._notify(StorageChange(STORAGE_UNAVAILABLE))

    def _notify(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                self._logger.error("Storage listener failed on %s", change.reason, exc_info=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"LocalDeviceStorage({str(self.root)!r}, name={self.name!r})"


def open_storage(root: Path, subdir: Optional[str] = None, *, logger: LoggerLike = None) -> LocalDeviceStorage:
    """Create (if needed) and return a storage rooted at ``root/subdir``."""
    path = Path(root) / subdir if subdir else Path(root)
    path.mkdir(parents=True, exist_ok=True)
    return LocalDeviceStorage(path, name=subdir or path.name, logger=logger)


__all__ = ["LocalDeviceStorage", "open_storage"]
