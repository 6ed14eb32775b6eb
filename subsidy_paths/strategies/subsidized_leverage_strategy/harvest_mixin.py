from __future__ import annotations

from . import mirror
from .planner import harvest_profits, pro_rata_repayments
from .types import HarvestReport, PositionSnapshot


class SubsidizedLeverageHarvestMixin:
    async def harvest_and_report(self) -> int:
        """Route both yield streams out of the position and report the vault total.

        Collateral appreciation repays whitelisted borrowers pro-rata (or the
        strategy's own debt when none owe anything); lending interest goes to
        the donation address. The returned total never moves, so the owning
        vault's share price stays fixed.
        """
        async with self._operation("harvest_and_report"):
            snapshot = await self._snapshot()
            profit_collateral, profit_supply = harvest_profits(
                snapshot, self.accounting
            )
            report = HarvestReport(
                profit_collateral=profit_collateral, profit_supply=profit_supply
            )

            if profit_collateral > 0:
                await self._route_collateral_profit(snapshot, profit_collateral, report)
            else:
                self.logger.debug("No collateral appreciation since last harvest")

            if profit_supply > 0:
                await self._donate_supply_profit(profit_supply, report)
            else:
                self.logger.debug("No lending interest since last harvest")

            self.accounting.last_collateral_value = max(
                0, snapshot.collateral_value - profit_collateral
            )
            self.accounting.last_supply_value = max(
                0, snapshot.supplied - profit_supply
            )
            self.accounting.harvest_count += 1

            report.reported_total_assets = self.accounting.reported_total_assets
            self.last_harvest = report
            self.logger.info(f"Harvest #{self.accounting.harvest_count}: {report.summary()}")
            return report.reported_total_assets

    async def _route_collateral_profit(
        self, snapshot: PositionSnapshot, profit: int, report: HarvestReport
    ) -> None:
        units = min(snapshot.value_units(profit), snapshot.position.collateral)
        if units <= 0:
            self.logger.debug(f"Collateral profit {profit} below one collateral unit")
            return

        received = await self._release_collateral(units, track=False)
        report.collateral_units_redeemed = units
        report.received = received

        debts: dict[str, int] = {}
        for borrower in self.registry:
            position = self._require(
                await self.morpho_adapter.get_position(
                    account=borrower, **self._market_kwargs()
                ),
                f"read position of {borrower}",
            )
            debts[borrower] = mirror.borrowed_value(position, snapshot.market)

        if sum(debts.values()) > 0:
            repayments = pro_rata_repayments(min(profit, received), debts)
            for borrower, amount in repayments.items():
                await self._repay(amount, on_behalf_of=borrower)
                self.registry.record_repayment(borrower, amount)
                self.accounting.total_borrower_repaid += amount
                self.logger.info(f"Subsidized {amount} of {borrower}'s debt")
            report.borrower_repayments = repayments
            return

        own = min(received, snapshot.full_debt)
        if own <= 0:
            self.logger.debug("No borrower or own debt to repay; profit stays idle")
            return
        await self._repay(own, full=own >= snapshot.full_debt)
        report.own_debt_repaid = own
        self.accounting.total_own_debt_repaid += own
        self.logger.info(f"No borrower debt outstanding; repaid {own} of own debt")

    async def _donate_supply_profit(self, profit: int, report: HarvestReport) -> None:
        await self._withdraw_supply(profit, track=False)
        self._require(
            await self.vault_adapter.transfer_asset(
                self.settings.donation_address, profit
            ),
            "donate lending interest",
        )
        report.donated = profit
        self.accounting.total_donated += profit
        self.logger.info(f"Donated {profit} to {self.settings.donation_address}")
