"""Reader/writer for ``key = value`` camera settings files."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, Iterable, List

import aiofiles

from .logging_utils import LoggerLike, ensure_structured_logger


class ConfigManager:
    """Parses and updates flat settings files.

    Lines look like ``record.space_padding_bytes = 1048576``. Blank lines and
    ``#`` comments are ignored, trailing comments are stripped and values may
    be quoted. Writes preserve the file's existing lines and append new keys.
    """

    def __init__(self, *, logger: LoggerLike = None) -> None:
        self.logger = ensure_structured_logger(logger, fallback_name="ConfigManager")
        self.lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _stringify_value(value: Any) -> str:
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (list, tuple)):
            return ", ".join(str(item) for item in value)
        return str(value)

    @staticmethod
    def parse_lines(lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip()

            if "#" in value:
                value = value.split("#")[0].strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                value = value[1:-1]

            config[key] = value

        return config

    def _render_lines(self, lines: List[str], updates: Dict[str, Any]) -> List[str]:
        updated_keys = set()
        rendered = list(lines)

        for i, line in enumerate(rendered):
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key = stripped.split("=", 1)[0].strip()
            if key in updates:
                indent = len(line) - len(line.lstrip())
                rendered[i] = " " * indent + f"{key} = {self._stringify_value(updates[key])}\n"
                updated_keys.add(key)

        if rendered and not rendered[-1].endswith("\n"):
            rendered[-1] += "\n"
        for key, value in updates.items():
            if key not in updated_keys:
                rendered.append(f"{key} = {self._stringify_value(value)}\n")
        return rendered

    # ------------------------------------------------------------------
    # Public API

    def read_config(self, config_path: Path) -> Dict[str, str]:
        """Blocking read; returns an empty mapping when the file is missing or unreadable."""
        config_path = Path(config_path)
        if not config_path.exists():
            return {}
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                return self.parse_lines(fh)
        except OSError as exc:
            self.logger.error("Failed to read config %s: %s", config_path, exc)
            return {}

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        config_path = Path(config_path)
        if not await asyncio.to_thread(config_path.exists):
            self.logger.debug("Config file %s not present; using defaults", config_path)
            return {}
        try:
            lines: List[str] = []
            async with aiofiles.open(config_path, "r", encoding="utf-8") as fh:
                async for line in fh:
                    lines.append(line)
        except OSError as exc:
            self.logger.error("Failed to read config %s: %s", config_path, exc)
            return {}
        return self.parse_lines(lines)

    async def write_config_async(self, config_path: Path, updates: Dict[str, Any]) -> bool:
        """Apply ``updates`` to ``config_path``, creating the file when missing."""
        if not updates:
            return True
        config_path = Path(config_path)
        async with self.lock:
            try:
                lines: List[str] = []
                if await asyncio.to_thread(config_path.exists):
                    async with aiofiles.open(config_path, "r", encoding="utf-8") as fh:
                        lines = await fh.readlines()
                else:
                    await asyncio.to_thread(config_path.parent.mkdir, parents=True, exist_ok=True)

                rendered = self._render_lines(lines, updates)
                async with aiofiles.open(config_path, "w", encoding="utf-8") as fh:
                    await fh.writelines(rendered)
            except OSError as exc:
                self.logger.error("Failed to write config %s: %s", config_path, exc)
                return False

        self.logger.debug("Persisted %d config keys to %s", len(updates), config_path)
        return True


__all__ = ["ConfigManager"]
