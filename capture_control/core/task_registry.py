"""Centralized task lifecycle management for the capture controllers."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Dict, Optional


class TaskRegistry:
    """
    Registry for background tasks owned by the controllers.

    Supports named singleton tasks (recording ticker, focus reset) and keyed
    task groups (in-flight image saves). Cancellation always awaits the task.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}
        self._groups: Dict[str, Dict[str, asyncio.Task]] = {}

    # ------------------------------------------------------------------ Singleton Tasks

    def register(self, name: str, task: asyncio.Task) -> None:
        """Register a named singleton task, cancelling any existing task with that name."""
        existing = self._tasks.get(name)
        if existing and existing is not task and not existing.done():
            existing.cancel()
        self._tasks[name] = task

    def get(self, name: str) -> Optional[asyncio.Task]:
        return self._tasks.get(name)

    def is_running(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    async def cancel(self, name: str) -> None:
        """Cancel and await a singleton task."""
        task = self._tasks.pop(name, None)
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------ Keyed Task Groups

    def register_keyed(self, group: str, key: str, task: asyncio.Task) -> None:
        """Register a task in a keyed group; finished tasks drop out on their own."""
        tasks = self._groups.setdefault(group, {})
        existing = tasks.get(key)
        if existing and not existing.done():
            existing.cancel()
        tasks[key] = task
        task.add_done_callback(lambda done, g=group, k=key: self._discard_keyed(g, k, done))

    def _discard_keyed(self, group: str, key: str, task: asyncio.Task) -> None:
        tasks = self._groups.get(group)
        if tasks is not None and tasks.get(key) is task:
            del tasks[key]

    def get_keyed(self, group: str, key: str) -> Optional[asyncio.Task]:
        return self._groups.get(group, {}).get(key)

    async def wait_group(self, group: str) -> None:
        """Wait for every task currently in ``group`` to finish."""
        tasks = list(self._groups.get(group, {}).values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def cancel_group(self, group: str) -> None:
        """Cancel and await all tasks in a group."""
        tasks = [task for task in self._groups.pop(group, {}).values() if not task.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------ Bulk Operations

    async def cancel_all(self) -> None:
        """Cancel and await all registered tasks (singleton and grouped)."""
        for name in list(self._tasks):
            await self.cancel(name)
        for group in list(self._groups):
            await self.cancel_group(group)

    def task_count(self) -> int:
        count = sum(1 for task in self._tasks.values() if not task.done())
        for group in self._groups.values():
            count += len(group)
        return count


__all__ = ["TaskRegistry"]
