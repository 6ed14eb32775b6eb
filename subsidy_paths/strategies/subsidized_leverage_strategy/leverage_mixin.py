from __future__ import annotations

from subsidy_paths.core.errors import InvalidInputError

from .constants import MAX_TARGET_LEVERAGE_BPS
from .planner import plan_rebalance, should_tend
from .types import RebalanceAction, RebalancePlan, TendDecision


class SubsidizedLeverageLeverageMixin:
    async def _rebalance(self, *, allow_increase: bool = True) -> RebalancePlan:
        snapshot = await self._snapshot()
        plan = plan_rebalance(
            snapshot,
            self.settings.target_leverage_bps,
            allow_increase=allow_increase,
        )

        if plan.action is RebalanceAction.BORROW:
            self.logger.info(
                f"Leverage up: borrow {plan.amount} "
                f"({plan.current_borrow} -> target {plan.target_borrow})"
            )
            await self._borrow(plan.amount)
            await self._supply(plan.amount)
        elif plan.action is RebalanceAction.REPAY:
            withdraw = min(plan.amount, snapshot.supplied, snapshot.market.liquidity)
            self.logger.info(
                f"Leverage down: excess {plan.amount}, withdrawing {withdraw} "
                f"({plan.current_borrow} -> target {plan.target_borrow})"
            )
            if withdraw > 0:
                await self._withdraw_supply(withdraw)
            repay = min(plan.amount, await self._idle())
            if repay > 0:
                await self._repay(repay, full=repay >= snapshot.full_debt)
        else:
            self.logger.debug(
                f"Leverage on target (borrow={plan.current_borrow}, "
                f"target={plan.target_borrow})"
            )
        return plan

    async def tend(self, idle_amount: int) -> None:
        idle_amount = self._require_amount(idle_amount)
        async with self._operation("tend"):
            if not self.shutdown and idle_amount > 0:
                deployable = min(idle_amount, await self._idle())
                if deployable > 0:
                    self.logger.info(f"Redeploying {deployable} idle")
                    await self._deploy(deployable)
            await self._rebalance(allow_increase=not self.shutdown)

    async def tend_decision(self) -> TendDecision:
        decision = should_tend(await self._snapshot(), self.settings)
        self.logger.debug(f"Tend trigger: {decision.should_tend} ({decision.reason})")
        return decision

    async def tend_trigger(self) -> bool:
        return (await self.tend_decision()).should_tend

    async def set_target_leverage(self, bps: int, *, caller: str | None) -> None:
        self._require_management(caller)
        if isinstance(bps, bool) or not isinstance(bps, int):
            raise InvalidInputError(f"target leverage must be an int, got {bps!r}")
        if not 0 <= bps <= MAX_TARGET_LEVERAGE_BPS:
            raise InvalidInputError(
                f"target leverage {bps} outside [0, {MAX_TARGET_LEVERAGE_BPS}] bps"
            )
        async with self._operation("set_target_leverage"):
            self.settings.target_leverage_bps = bps
            self.logger.info(f"Target leverage set to {bps} bps")
