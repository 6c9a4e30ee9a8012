"""DCF-style file naming (``DCIM/100CAMRA/IMG_0001.jpg``).

Pictures and videos share one sequence so an image and a video never get the
same number. The sequence is seeded from the files already present.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from capture_control.camera.defaults import DEFAULT_DCF_TAG
from capture_control.camera.hardware import DeviceStorage
from capture_control.core.errors import StorageWriteFailure
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger

DCIM_ROOT = "DCIM"
FIRST_DIR = 100
LAST_DIR = 999
LAST_FILE = 9999

_KINDS = {
    "image": ("IMG_", ".jpg"),
    "video": ("VID_", ".3gp"),
}

_DIR_RE = re.compile(r"^(\d{3})[A-Z0-9_]{5}$")
_FILE_RE = re.compile(r"^[A-Z]{3}_(\d{4})\.", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DcfName:
    directory: str
    name: str

    @property
    def path(self) -> str:
        return self.directory + self.name


class DcfNamer:
    def __init__(
        self,
        storages: Sequence[DeviceStorage],
        *,
        tag: str = DEFAULT_DCF_TAG,
        logger: LoggerLike = None,
    ) -> None:
        self._storages = list(storages)
        self._tag = tag
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._seq: Optional[Tuple[int, int]] = None
        self._lock = asyncio.Lock()

    async def _seed(self) -> Tuple[int, int]:
        last_dir, last_file = FIRST_DIR, 0
        for storage in self._storages:
            try:
                entries = await storage.enumerate(f"{DCIM_ROOT}/")
            except OSError as exc:
                self._logger.warning("Cannot enumerate %s for DCF seed: %s", storage.name, exc)
                continue
            for dir_num, file_num in _scan(entries):
                if (dir_num, file_num) > (last_dir, last_file):
                    last_dir, last_file = dir_num, file_num
        self._logger.debug("DCF sequence seeded at %03d/%04d", last_dir, last_file)
        return last_dir, last_file

    async def next_name(self, kind: str) -> DcfName:
        """Reserve the next name for ``kind`` (``image`` or ``video``)."""

        try:
            prefix, ext = _KINDS[kind]
        except KeyError:
            raise ValueError(f"Unknown DCF kind: {kind!r}") from None

        async with self._lock:
            if self._seq is None:
                self._seq = await self._seed()
            dir_num, file_num = self._seq
            file_num += 1
            if file_num > LAST_FILE:
                dir_num, file_num = dir_num + 1, 1
            if dir_num > LAST_DIR:
                raise StorageWriteFailure("DCF directory numbers exhausted")
            self._seq = (dir_num, file_num)

        return DcfName(
            directory=f"{DCIM_ROOT}/{dir_num:03d}{self._tag}/",
            name=f"{prefix}{file_num:04d}{ext}",
        )


def _scan(entries: Iterable[str]):
    for entry in entries:
        parts = entry.replace("\\", "/").strip("/").split("/")
        # Expect [..., "DCIM", "100CAMRA", "IMG_0001.jpg"]
        if len(parts) < 3 or parts[-3] != DCIM_ROOT:
            continue
        dir_match = _DIR_RE.match(parts[-2])
        file_match = _FILE_RE.match(parts[-1])
        if dir_match and file_match:
            yield int(dir_match.group(1)), int(file_match.group(1))


__all__ = ["DcfName", "DcfNamer"]
