from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypedDict

from loguru import logger

from subsidy_paths.core.errors import ReentrancyError


class StatusDict(TypedDict):
    portfolio_value: int
    net_deposit: int
    strategy_status: Any
    health_factor: int
    shutdown: bool


StatusTuple = tuple[bool, str]


class WalletConfig(TypedDict, total=False):
    address: str
    private_key: str | None
    private_key_hex: str | None


class StrategyConfig(TypedDict, total=False):
    main_wallet: WalletConfig | None
    strategy_wallet: WalletConfig | None


class Strategy(ABC):
    name: str | None = None

    def __init__(
        self,
        config: StrategyConfig | dict[str, Any] | None = None,
        *,
        main_wallet_signing_callback: Callable[[dict], Awaitable[bytes]] | None = None,
        strategy_wallet_signing_callback: Callable[[dict], Awaitable[bytes]]
        | None = None,
        **kwargs: Any,
    ):
        self.logger = logger.bind(strategy=self.__class__.__name__)
        self.config: StrategyConfig | dict[str, Any] = config or {}
        self.main_wallet_signing_callback = main_wallet_signing_callback
        self.strategy_wallet_signing_callback = strategy_wallet_signing_callback
        self._active_operation: str | None = None

    async def setup(self) -> None:
        pass

    def _get_strategy_wallet_address(self) -> str:
        strategy_wallet = self.config.get("strategy_wallet")
        if not strategy_wallet or not isinstance(strategy_wallet, dict):
            raise ValueError("strategy_wallet not configured in strategy config")
        address = strategy_wallet.get("address")
        if not address:
            raise ValueError("strategy_wallet address not found in config")
        return str(address)

    def _get_main_wallet_address(self) -> str:
        main_wallet = self.config.get("main_wallet")
        if not main_wallet or not isinstance(main_wallet, dict):
            raise ValueError("main_wallet not configured in strategy config")
        address = main_wallet.get("address")
        if not address:
            raise ValueError("main_wallet address not found in config")
        return str(address)

    def _snapshot_state(self) -> Any:
        return None

    def _restore_state(self, snapshot: Any) -> None:
        pass

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        """Run one mutating operation with exclusive access to owned state.

        A second mutating call while one is in flight raises ``ReentrancyError``.
        Owned state is restored from the entry snapshot if the body raises;
        transactions already mined on-chain are not reverted.
        """
        if self._active_operation is not None:
            raise ReentrancyError(
                f"{name} rejected: {self._active_operation} already in progress"
            )
        self._active_operation = name
        snapshot = self._snapshot_state()
        try:
            yield
        except BaseException:
            self.logger.warning(f"{name} aborted, restoring strategy state")
            self._restore_state(snapshot)
            raise
        finally:
            self._active_operation = None

    @property
    def busy(self) -> bool:
        return self._active_operation is not None

    @abstractmethod
    async def deposit(self, **kwargs) -> StatusTuple:
        pass

    async def withdraw(self, **kwargs) -> StatusTuple:
        return (True, "Withdrawal complete")

    @abstractmethod
    async def update(self) -> StatusTuple:
        pass

    @abstractmethod
    async def exit(self, **kwargs) -> StatusTuple:
        pass

    @abstractmethod
    async def _status(self) -> StatusDict:
        pass

    async def status(self) -> StatusDict:
        return await self._status()
