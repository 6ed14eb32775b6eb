from __future__ import annotations

from subsidy_paths.core.constants.base import MAX_UINT256
from subsidy_paths.core.errors import StrategyError
from subsidy_paths.core.strategies.Strategy import StatusTuple
from subsidy_paths.core.utils.addresses import same_address

from .planner import plan_unwind, shortfall_collateral


class SubsidizedLeverageUnwindMixin:
    async def _withdraw_supply_within_liquidity(
        self, amount: int, liquidity: int, *, full: bool
    ) -> int:
        """Withdraw up to ``amount`` of supply without exceeding market liquidity.

        A full withdrawal goes by shares only when the market can pay all of it
        out; otherwise it falls back to an asset-sized partial withdrawal.
        """
        if full and amount <= liquidity:
            return await self._withdraw_supply(0, full=True)
        capped = min(amount, liquidity)
        if capped < amount:
            self.logger.info(
                f"Market liquidity {liquidity} caps supply withdrawal of {amount}"
            )
        if capped <= 0:
            return 0
        return await self._withdraw_supply(capped)

    async def _unwind(self, requested: int) -> int:
        """Proportionally deleverage enough of the position to free ``requested``.

        Order: withdraw supply (up to market liquidity), cover any repay
        shortfall from collateral, repay debt, withdraw whatever supply the
        repayment made liquid, then release the remaining collateral. Returns
        the growth in the wallet's liquid balance.
        """
        snapshot = await self._snapshot()
        plan = plan_unwind(snapshot, requested)
        if plan.is_noop:
            self.logger.debug(f"Nothing to unwind for request {requested}")
            return 0

        self.logger.info(
            f"Unwinding ratio={plan.ratio} full={plan.full} "
            f"supply={plan.supply_to_withdraw} debt={plan.debt_to_repay} "
            f"collateral={plan.collateral_to_release}"
        )
        liquid_before = snapshot.idle

        supply_withdrawn = 0
        if plan.full and snapshot.position.supply_shares > 0:
            supply_withdrawn = await self._withdraw_supply_within_liquidity(
                snapshot.supplied, snapshot.market.liquidity, full=True
            )
        elif plan.supply_to_withdraw > 0:
            supply_withdrawn = await self._withdraw_supply_within_liquidity(
                plan.supply_to_withdraw, snapshot.market.liquidity, full=False
            )
        supply_capped = plan.supply_to_withdraw > snapshot.market.liquidity

        collateral_to_release = plan.collateral_to_release
        liquid = await self._idle()
        if liquid < plan.debt_to_repay and collateral_to_release > 0:
            shortfall = plan.debt_to_repay - liquid
            needed = shortfall_collateral(
                collateral_to_release,
                snapshot.units_value(collateral_to_release),
                shortfall,
            )
            self.logger.info(
                f"Liquid {liquid} short of debt {plan.debt_to_repay}; "
                f"redeeming {needed} collateral units first"
            )
            await self._release_collateral(needed)
            collateral_to_release -= needed
            liquid = await self._idle()

        repay = min(plan.debt_to_repay, liquid)
        if repay > 0:
            await self._repay(
                repay, full=plan.full and repay >= plan.debt_to_repay
            )

        if supply_capped:
            after = await self._snapshot()
            remaining = (
                after.supplied
                if plan.full
                else plan.supply_to_withdraw - supply_withdrawn
            )
            if remaining > 0 and after.position.supply_shares > 0:
                await self._withdraw_supply_within_liquidity(
                    remaining, after.market.liquidity, full=plan.full
                )

        if collateral_to_release > 0:
            await self._release_collateral(collateral_to_release)

        freed = max(0, await self._idle() - liquid_before)
        self.logger.info(f"Unwind freed {freed}")
        return freed

    async def free_funds(self, amount: int) -> int:
        amount = self._require_amount(amount)
        async with self._operation("free_funds"):
            idle = await self._idle()
            shortfall = max(0, amount - idle)
            if shortfall == 0:
                self.logger.debug(f"free_funds({amount}) covered by idle {idle}")
                return 0
            return await self._unwind(shortfall)

    async def emergency_withdraw(self, amount: int) -> int:
        amount = self._require_amount(amount)
        async with self._operation("emergency_withdraw"):
            if not self.shutdown:
                self.logger.warning("Emergency withdraw: strategy shut down")
            self.shutdown = True
            return await self._unwind(amount)

    async def withdraw(self, amount: int | None = None, **kwargs) -> StatusTuple:
        try:
            requested = (
                MAX_UINT256 if amount is None else self._require_amount(amount)
            )
            async with self._operation("withdraw"):
                idle = await self._idle()
                freed = 0
                if requested > idle:
                    freed = await self._unwind(requested - idle)
                if amount is None:
                    self.accounting.reported_total_assets = 0
                else:
                    self.accounting.reported_total_assets = max(
                        0, self.accounting.reported_total_assets - requested
                    )
                idle = await self._idle()
        except StrategyError as exc:
            self.logger.error(f"withdraw failed: {exc}")
            return (False, str(exc))
        return (True, f"Freed {freed}; liquid balance {idle}")

    async def exit(self, **kwargs) -> StatusTuple:
        try:
            async with self._operation("exit"):
                await self._unwind(MAX_UINT256)
                self.accounting.reported_total_assets = 0
                idle = await self._idle()

                main_addr = self._main_wallet_address()
                strategy_addr = self.vault_adapter.wallet_address
                if idle > 0 and main_addr and not same_address(main_addr, strategy_addr):
                    self._require(
                        await self.vault_adapter.transfer_asset(main_addr, idle),
                        "transfer to main wallet",
                    )
                    return (True, f"Position closed; transferred {idle} to main wallet")
        except StrategyError as exc:
            self.logger.error(f"exit failed: {exc}")
            return (False, str(exc))
        return (True, f"Position closed; liquid balance {idle}")
