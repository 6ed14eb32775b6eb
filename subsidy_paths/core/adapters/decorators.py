from __future__ import annotations

from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

T = TypeVar("T")


def status_tuple(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | str]]]:
    """Wrap an async adapter call so it returns ``(True, result)`` or ``(False, reason)``.

    Protocol reverts, RPC failures and argument errors all surface as
    ``(False, str(exc))``; the caller decides whether that aborts its operation.
    """

    @wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> tuple[bool, T | str]:
        try:
            return (True, await fn(self, *args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"{self.name}.{fn.__name__} failed: {exc}")
            return (False, str(exc))

    return wrapper  # type: ignore[return-value]
