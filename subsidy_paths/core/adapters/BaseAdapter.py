from __future__ import annotations

import functools
from abc import ABC
from collections.abc import Callable
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger


def require_wallet(fn: Callable) -> Callable:
    """Return ``(False, ...)`` early if ``self.wallet_address`` is not set."""

    @functools.wraps(fn)
    async def wrapper(self: BaseAdapter, *args: Any, **kwargs: Any) -> Any:
        if not getattr(self, "wallet_address", None):
            return False, "wallet address not configured"
        return await fn(self, *args, **kwargs)

    return wrapper


class BaseAdapter(ABC):
    adapter_type: str | None = None

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        wallet_address: str | None = None,
    ):
        self.name = name
        self.config = config or {}
        self.wallet_address: str | None = (
            to_checksum_address(wallet_address) if wallet_address else None
        )
        self.logger = logger.bind(adapter=self.__class__.__name__)

    def _account(self, account: str | None) -> str:
        acct = to_checksum_address(account) if account else self.wallet_address
        if not acct:
            raise ValueError("strategy wallet address not configured")
        return acct

    async def close(self) -> None:
        pass
