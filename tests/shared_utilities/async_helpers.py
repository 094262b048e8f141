"""Async testing helpers and utilities."""

from collections.abc import Awaitable, Callable
from typing import Any


def recording(calls: list[str], label: str, result: Any = None) -> Callable[[Any], Awaitable[Any]]:
    """Work function that appends ``label`` to ``calls`` and returns ``result``."""

    async def work(context: Any) -> Any:
        calls.append(label)
        return result

    return work


def failing(calls: list[str], label: str, error: Exception | None = None) -> Callable[[Any], Awaitable[Any]]:
    """Work function that appends ``label`` to ``calls`` and then raises."""

    async def work(context: Any) -> Any:
        calls.append(label)
        raise error or RuntimeError(f"{label} failed")

    return work

