from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from subsidy_paths.adapters.morpho_adapter.adapter import MorphoAdapter
from subsidy_paths.adapters.savings_vault_adapter.adapter import SavingsVaultAdapter
from subsidy_paths.core.errors import (
    ExternalProtocolError,
    InvalidInputError,
    StrategyError,
    StrategyShutdownError,
    UnauthorizedError,
)
from subsidy_paths.core.strategies import StatusDict, StatusTuple, Strategy
from subsidy_paths.core.utils.addresses import normalize_address, same_address
from subsidy_paths.core.utils.transaction import private_key_signer

from . import mirror
from .harvest_mixin import SubsidizedLeverageHarvestMixin
from .leverage_mixin import SubsidizedLeverageLeverageMixin
from .registry import BorrowerRegistry
from .settings import SubsidizedLeverageSettings
from .types import HarvestReport, PositionSnapshot, StrategyAccounting
from .unwind_mixin import SubsidizedLeverageUnwindMixin


class SubsidizedLeverageStrategy(
    SubsidizedLeverageUnwindMixin,
    SubsidizedLeverageHarvestMixin,
    SubsidizedLeverageLeverageMixin,
    Strategy,
):
    """Leveraged savings-vault position whose yield subsidizes community borrowers.

    Savings-vault shares are pledged as collateral in one isolated Morpho
    market; the loan asset is borrowed to the target leverage and supplied
    back to the same market. Collateral appreciation pays down whitelisted
    borrowers' debt and lending interest is donated.
    """

    name = "subsidized_leverage_strategy"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        vault_adapter: SavingsVaultAdapter | None = None,
        morpho_adapter: MorphoAdapter | None = None,
        **kwargs,
    ) -> None:
        super().__init__(config=config, **kwargs)
        self.settings = SubsidizedLeverageSettings.model_validate(self.config)

        self.accounting = StrategyAccounting()
        self.registry = BorrowerRegistry(self.settings.borrowers)
        self.shutdown = False
        self.last_harvest: HarvestReport | None = None

        self.vault_adapter = vault_adapter
        self.morpho_adapter = morpho_adapter

    async def setup(self) -> None:
        if self.vault_adapter is not None and self.morpho_adapter is not None:
            return

        strategy_wallet = self.config.get("strategy_wallet") or {}
        strategy_address = self._get_strategy_wallet_address()
        private_key = strategy_wallet.get("private_key") or strategy_wallet.get(
            "private_key_hex"
        )
        sign_callback = self.strategy_wallet_signing_callback or (
            private_key_signer(private_key) if private_key else None
        )

        self.vault_adapter = self.vault_adapter or SavingsVaultAdapter(
            config=dict(self.config),
            sign_callback=sign_callback,
            wallet_address=strategy_address,
            vault_address=self.settings.savings_vault,
            chain_id=self.settings.chain_id,
        )
        self.morpho_adapter = self.morpho_adapter or MorphoAdapter(
            config=dict(self.config),
            sign_callback=sign_callback,
            wallet_address=strategy_address,
        )
        logger.info("SubsidizedLeverageStrategy setup complete")

    # ── owned state ──────────────────────────────────────────────────────────

    def _snapshot_state(self) -> tuple[StrategyAccounting, BorrowerRegistry, int]:
        return (
            self.accounting.copy(),
            self.registry.snapshot(),
            self.settings.target_leverage_bps,
        )

    def _restore_state(
        self, snapshot: tuple[StrategyAccounting, BorrowerRegistry, int]
    ) -> None:
        accounting, registry, target = snapshot
        # Repayments and donations are mined transactions; their totals never roll back.
        accounting.total_borrower_repaid = self.accounting.total_borrower_repaid
        accounting.total_own_debt_repaid = self.accounting.total_own_debt_repaid
        accounting.total_donated = self.accounting.total_donated
        registry.adopt_repayments(self.registry)
        self.accounting, self.registry = accounting, registry
        self.settings.target_leverage_bps = target

    def _main_wallet_address(self) -> str | None:
        try:
            return self._get_main_wallet_address()
        except ValueError:
            return None

    @property
    def management(self) -> str | None:
        return self.settings.management or self._main_wallet_address()

    def _require_management(self, caller: str | None) -> None:
        if not self.management or not same_address(caller, self.management):
            raise UnauthorizedError(f"{caller} is not the management address")

    @staticmethod
    def _require_amount(amount: int) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidInputError(f"amount must be an int, got {amount!r}")
        if amount < 0:
            raise InvalidInputError(f"amount must be non-negative, got {amount}")
        return amount

    # ── protocol plumbing ────────────────────────────────────────────────────

    @staticmethod
    def _require(result: tuple[bool, Any], action: str) -> Any:
        ok, value = result
        if not ok:
            raise ExternalProtocolError(action, value)
        return value

    def _market_kwargs(self) -> dict[str, Any]:
        return {
            "chain_id": self.settings.chain_id,
            "market_unique_key": self.settings.market_unique_key,
        }

    async def _idle(self) -> int:
        return int(
            self._require(
                await self.vault_adapter.get_asset_balance(), "read liquid balance"
            )
        )

    async def _snapshot(self) -> PositionSnapshot:
        position, market, vault, idle, params = await asyncio.gather(
            self.morpho_adapter.get_position(**self._market_kwargs()),
            self.morpho_adapter.get_market_totals(**self._market_kwargs()),
            self.vault_adapter.get_totals(),
            self.vault_adapter.get_asset_balance(),
            self.morpho_adapter.get_market_params(**self._market_kwargs()),
        )
        return PositionSnapshot(
            position=self._require(position, "read market position"),
            market=self._require(market, "read market totals"),
            vault=self._require(vault, "read vault totals"),
            idle=int(self._require(idle, "read liquid balance")),
            lltv=self._require(params, "read market params").lltv,
        )

    async def _deploy(self, amount: int) -> int:
        shares_before = self._require(
            await self.vault_adapter.balance_of(), "read vault shares"
        )
        self._require(await self.vault_adapter.deposit(amount), "savings deposit")
        shares_after = self._require(
            await self.vault_adapter.balance_of(), "read vault shares"
        )
        minted = max(0, int(shares_after) - int(shares_before))
        if minted == 0:
            return 0

        self._require(
            await self.morpho_adapter.supply_collateral(
                qty=minted, **self._market_kwargs()
            ),
            "supply collateral",
        )
        totals = self._require(await self.vault_adapter.get_totals(), "read vault totals")
        value = mirror.units_to_assets(minted, totals.total_assets, totals.total_shares)
        self.accounting.add_collateral(value)
        self.logger.info(f"Deployed {amount} into {minted} collateral units ({value})")
        return minted

    async def _release_collateral(self, units: int, *, track: bool = True) -> int:
        position = self._require(
            await self.morpho_adapter.get_position(**self._market_kwargs()),
            "read market position",
        )
        before = await self._idle()
        self._require(
            await self.morpho_adapter.withdraw_collateral(
                qty=units, **self._market_kwargs()
            ),
            "withdraw collateral",
        )
        self._require(await self.vault_adapter.redeem(units), "savings redeem")
        received = max(0, await self._idle() - before)
        if track:
            self.accounting.release_collateral(units, position.collateral)
        self.logger.info(f"Released {units} collateral units for {received}")
        return received

    async def _supply(self, amount: int) -> None:
        self._require(
            await self.morpho_adapter.lend(qty=amount, **self._market_kwargs()),
            "supply",
        )
        self.accounting.add_supply(amount)

    async def _withdraw_supply(
        self, amount: int, *, full: bool = False, track: bool = True
    ) -> int:
        before = await self._idle()
        self._require(
            await self.morpho_adapter.unlend(
                qty=amount, withdraw_full=full, **self._market_kwargs()
            ),
            "withdraw supply",
        )
        withdrawn = max(0, await self._idle() - before)
        if track:
            self.accounting.remove_supply(withdrawn)
        return withdrawn

    async def _borrow(self, amount: int) -> None:
        self._require(
            await self.morpho_adapter.borrow(qty=amount, **self._market_kwargs()),
            "borrow",
        )

    async def _repay(
        self, amount: int, *, on_behalf_of: str | None = None, full: bool = False
    ) -> None:
        self._require(
            await self.morpho_adapter.repay(
                qty=amount,
                on_behalf_of=on_behalf_of,
                repay_full=full,
                **self._market_kwargs(),
            ),
            "repay" if on_behalf_of is None else f"repay on behalf of {on_behalf_of}",
        )

    # ── vault-facing operations ──────────────────────────────────────────────

    async def deploy_funds(self, amount: int) -> None:
        amount = self._require_amount(amount)
        if self.shutdown:
            raise StrategyShutdownError("strategy is shut down; deploy refused")
        async with self._operation("deploy_funds"):
            await self._deploy_and_rebalance(amount)

    async def _deploy_and_rebalance(self, amount: int) -> None:
        if amount > 0:
            await self._deploy(amount)
        await self._rebalance()

    async def add_borrower(self, address: str, *, caller: str | None) -> str:
        self._require_management(caller)
        addr = normalize_address(address, field="borrower")
        async with self._operation("add_borrower"):
            self.registry.add(addr)
            self.logger.info(f"Borrower whitelisted: {addr}")
            return addr

    async def remove_borrower(self, address: str, *, caller: str | None) -> str:
        self._require_management(caller)
        addr = normalize_address(address, field="borrower")
        async with self._operation("remove_borrower"):
            self.registry.remove(addr)
            self.logger.info(f"Borrower removed: {addr}")
            return addr

    # ── views ────────────────────────────────────────────────────────────────

    async def estimated_total_assets(self) -> int:
        return (await self._snapshot()).total_assets

    async def health_factor(self) -> int:
        return (await self._snapshot()).health_factor

    async def current_leverage_bps(self) -> int:
        return (await self._snapshot()).leverage_bps

    async def borrower_debt(self, address: str) -> int:
        addr = normalize_address(address, field="borrower")
        position, totals = await asyncio.gather(
            self.morpho_adapter.get_position(account=addr, **self._market_kwargs()),
            self.morpho_adapter.get_market_totals(**self._market_kwargs()),
        )
        return mirror.borrowed_value(
            self._require(position, f"read position of {addr}"),
            self._require(totals, "read market totals"),
        )

    def borrower_repaid(self, address: str) -> int:
        return self.registry.cumulative_repaid(address)

    def borrowers(self) -> list[str]:
        return self.registry.addresses()

    # ── SDK surface ──────────────────────────────────────────────────────────

    async def deposit(self, main_token_amount: int = 0, **kwargs) -> StatusTuple:
        try:
            amount = self._require_amount(main_token_amount)
            if amount == 0:
                return (False, "Deposit amount must be positive")
            if self.shutdown:
                raise StrategyShutdownError("strategy is shut down; deposit refused")
            async with self._operation("deposit"):
                self.accounting.reported_total_assets += amount
                await self._deploy_and_rebalance(amount)
        except StrategyError as exc:
            self.logger.error(f"deposit failed: {exc}")
            return (False, str(exc))
        return (True, f"Deployed {amount}; reported total {self.accounting.reported_total_assets}")

    async def update(self) -> StatusTuple:
        try:
            reported = await self.harvest_and_report()
            decision = await self.tend_decision()
            if decision.should_tend:
                await self.tend(await self._idle())
        except StrategyError as exc:
            self.logger.error(f"update failed: {exc}")
            return (False, str(exc))

        harvest = self.last_harvest.summary() if self.last_harvest else "no harvest"
        tended = f"tended ({decision.reason})" if decision.should_tend else "no tend"
        return (True, f"Harvested [{harvest}]; {tended}; reported total {reported}")

    async def _status(self) -> StatusDict:
        snapshot = await self._snapshot()
        return StatusDict(
            portfolio_value=snapshot.total_assets,
            net_deposit=self.accounting.reported_total_assets,
            strategy_status={
                "collateral_units": snapshot.position.collateral,
                "collateral_value": snapshot.collateral_value,
                "supplied": snapshot.supplied,
                "borrowed": snapshot.borrowed,
                "idle": snapshot.idle,
                "leverage_bps": snapshot.leverage_bps,
                "target_leverage_bps": self.settings.target_leverage_bps,
                "borrowers": self.registry.addresses(),
                "harvest_count": self.accounting.harvest_count,
                "total_borrower_repaid": self.accounting.total_borrower_repaid,
                "total_own_debt_repaid": self.accounting.total_own_debt_repaid,
                "total_donated": self.accounting.total_donated,
            },
            health_factor=snapshot.health_factor,
            shutdown=self.shutdown,
        )
