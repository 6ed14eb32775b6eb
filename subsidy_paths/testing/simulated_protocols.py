"""In-memory savings vault and isolated lending market.

Both simulations expose the same coroutine surface as ``SavingsVaultAdapter``
and ``MorphoAdapter`` (``(ok, result)`` tuples via ``status_tuple``), so a
strategy can run end to end without an RPC. Share math is plain proportional
conversion with the pool-favouring rounding direction on every leg.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from typing import Any

from eth_utils import to_checksum_address

from subsidy_paths.core.adapters.BaseAdapter import BaseAdapter, require_wallet
from subsidy_paths.core.adapters.decorators import status_tuple
from subsidy_paths.core.adapters.models import (
    MarketParams,
    MarketPosition,
    MarketTotals,
    VaultTotals,
)
from subsidy_paths.core.constants.base import (
    ADAPTER_MORPHO,
    ADAPTER_SAVINGS_VAULT,
    MANTISSA,
)

ASSET = "ASSET"
VAULT_SHARE = "VAULT_SHARE"

VAULT_ADDRESS = to_checksum_address("0x" + "5a" * 20)
MARKET_ADDRESS = to_checksum_address("0x" + "b1" * 20)
ASSET_ADDRESS = to_checksum_address("0x" + "a5" * 20)

_tx_counter = itertools.count(1)


def _tx_hash() -> str:
    return f"0x{next(_tx_counter):064x}"


def _div_up(x: int, y: int, d: int) -> int:
    return (x * y + d - 1) // d


class InsufficientBalanceError(ValueError):
    pass


class TokenLedger:
    """Balances for every simulated token, keyed by checksummed holder."""

    def __init__(self) -> None:
        self._balances: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )

    def balance_of(self, token: str, holder: str) -> int:
        return self._balances[token][to_checksum_address(holder)]

    def total_supply(self, token: str) -> int:
        return sum(self._balances[token].values())

    def mint(self, token: str, holder: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        self._balances[token][to_checksum_address(holder)] += amount

    def burn(self, token: str, holder: str, amount: int) -> None:
        holder = to_checksum_address(holder)
        if self._balances[token][holder] < amount:
            raise InsufficientBalanceError(
                f"{holder} holds {self._balances[token][holder]} {token}, needs {amount}"
            )
        self._balances[token][holder] -= amount

    def transfer(self, token: str, src: str, dst: str, amount: int) -> None:
        self.burn(token, src, amount)
        self.mint(token, dst, amount)


class SimulatedSavingsVault(BaseAdapter):
    adapter_type = ADAPTER_SAVINGS_VAULT

    def __init__(
        self,
        ledger: TokenLedger,
        wallet_address: str | None = None,
        *,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__("simulated_savings_vault", config, wallet_address=wallet_address)
        self.ledger = ledger
        self.vault_address = VAULT_ADDRESS
        self.chain_id = int(self.config.get("chain_id") or 1)

    # ── test helpers ─────────────────────────────────────────────────────────

    @property
    def total_assets(self) -> int:
        return self.ledger.balance_of(ASSET, VAULT_ADDRESS)

    @property
    def total_shares(self) -> int:
        return self.ledger.total_supply(VAULT_SHARE)

    def fund(self, account: str, amount: int) -> None:
        self.ledger.mint(ASSET, account, amount)

    def accrue_yield(self, amount: int) -> None:
        """Raise the share price by adding ``amount`` of underlying."""
        self.ledger.mint(ASSET, VAULT_ADDRESS, amount)

    def _to_shares(self, assets: int) -> int:
        if self.total_shares == 0:
            return assets
        return assets * self.total_shares // self.total_assets

    def _to_assets(self, shares: int) -> int:
        if self.total_shares == 0:
            return 0
        return shares * self.total_assets // self.total_shares

    # ── adapter surface ──────────────────────────────────────────────────────

    @status_tuple
    async def get_asset(self) -> str:
        return ASSET_ADDRESS

    @status_tuple
    async def get_totals(self) -> VaultTotals:
        return VaultTotals(total_assets=self.total_assets, total_shares=self.total_shares)

    @status_tuple
    async def convert_to_assets(self, shares: int) -> int:
        return self._to_assets(int(shares))

    @status_tuple
    async def convert_to_shares(self, assets: int) -> int:
        return self._to_shares(int(assets))

    @status_tuple
    async def balance_of(self, account: str | None = None) -> int:
        return self.ledger.balance_of(VAULT_SHARE, self._account(account))

    @status_tuple
    async def get_asset_balance(self, account: str | None = None) -> int:
        return self.ledger.balance_of(ASSET, self._account(account))

    @require_wallet
    @status_tuple
    async def deposit(self, assets: int) -> str:
        assets = int(assets)
        if assets <= 0:
            raise ValueError("assets must be positive")
        shares = self._to_shares(assets)
        if shares <= 0:
            raise ValueError("deposit mints zero shares")
        self.ledger.transfer(ASSET, self.wallet_address, VAULT_ADDRESS, assets)
        self.ledger.mint(VAULT_SHARE, self.wallet_address, shares)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def redeem(self, shares: int) -> str:
        shares = int(shares)
        if shares <= 0:
            raise ValueError("shares must be positive")
        assets = self._to_assets(shares)
        self.ledger.burn(VAULT_SHARE, self.wallet_address, shares)
        self.ledger.transfer(ASSET, VAULT_ADDRESS, self.wallet_address, assets)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def transfer_asset(self, to: str, amount: int) -> str:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        self.ledger.transfer(ASSET, self.wallet_address, to, amount)
        return _tx_hash()


class SimulatedMorphoMarket(BaseAdapter):
    """One isolated market whose collateral is priced at the vault share price."""

    adapter_type = ADAPTER_MORPHO

    def __init__(
        self,
        ledger: TokenLedger,
        vault: SimulatedSavingsVault,
        wallet_address: str | None = None,
        *,
        lltv: int = MANTISSA * 86 // 100,
        config: dict[str, Any] | None = None,
    ) -> None:
        super().__init__("simulated_morpho_market", config, wallet_address=wallet_address)
        self.ledger = ledger
        self.vault = vault
        self.lltv = int(lltv)
        self.positions: dict[str, MarketPosition] = {}
        self.totals = MarketTotals()
        self.fail_on: set[str] = set()

    # ── test helpers ─────────────────────────────────────────────────────────

    def position_of(self, account: str) -> MarketPosition:
        return self.positions.get(to_checksum_address(account), MarketPosition())

    def _set_position(self, account: str, **changes: int) -> None:
        current = self.position_of(account)
        self.positions[to_checksum_address(account)] = current.model_copy(
            update=changes
        )

    def _set_totals(self, **changes: int) -> None:
        self.totals = self.totals.model_copy(update=changes)

    def seed_liquidity(self, supplier: str, assets: int) -> None:
        """An external lender funds the market."""
        self.ledger.mint(ASSET, supplier, assets)
        self._supply(supplier, assets)

    def open_borrow(self, account: str, assets: int) -> None:
        """An external borrower draws ``assets`` (collateral checks skipped)."""
        self._borrow(account, assets)

    def accrue_interest(self, assets: int) -> None:
        """Borrow interest accrues to lenders in full."""
        self._set_totals(
            total_borrow_assets=self.totals.total_borrow_assets + assets,
            total_supply_assets=self.totals.total_supply_assets + assets,
        )

    def accrue_supply_yield(self, assets: int) -> None:
        """Lenders earn ``assets`` without any change to borrower debt."""
        self.ledger.mint(ASSET, MARKET_ADDRESS, assets)
        self._set_totals(total_supply_assets=self.totals.total_supply_assets + assets)

    def supplied_assets(self, account: str) -> int:
        pos = self.position_of(account)
        if self.totals.total_supply_shares == 0:
            return 0
        return (
            pos.supply_shares
            * self.totals.total_supply_assets
            // self.totals.total_supply_shares
        )

    def borrowed_assets(self, account: str) -> int:
        pos = self.position_of(account)
        if self.totals.total_borrow_shares == 0:
            return 0
        return _div_up(
            pos.borrow_shares,
            self.totals.total_borrow_assets,
            self.totals.total_borrow_shares,
        )

    def _check_fail(self, action: str) -> None:
        if action in self.fail_on:
            raise RuntimeError(f"simulated {action} revert")

    def _check_healthy(self, account: str) -> None:
        pos = self.position_of(account)
        debt = self.borrowed_assets(account)
        if debt == 0:
            return
        value = self.vault._to_assets(pos.collateral)
        if value * self.lltv // MANTISSA < debt:
            raise ValueError("insufficient collateral")

    def _check_liquidity(self) -> None:
        if self.totals.total_borrow_assets > self.totals.total_supply_assets:
            raise ValueError("insufficient liquidity")

    def _supply(self, account: str, assets: int) -> None:
        t = self.totals
        shares = (
            assets
            if t.total_supply_shares == 0 or t.total_supply_assets == 0
            else assets * t.total_supply_shares // t.total_supply_assets
        )
        self.ledger.transfer(ASSET, account, MARKET_ADDRESS, assets)
        self._set_position(
            account, supply_shares=self.position_of(account).supply_shares + shares
        )
        self._set_totals(
            total_supply_assets=t.total_supply_assets + assets,
            total_supply_shares=t.total_supply_shares + shares,
        )

    def _borrow(self, account: str, assets: int, *, check_health: bool = False) -> None:
        t = self.totals
        pos = self.position_of(account)
        shares = (
            assets
            if t.total_borrow_shares == 0 or t.total_borrow_assets == 0
            else _div_up(assets, t.total_borrow_shares, t.total_borrow_assets)
        )
        self._set_position(account, borrow_shares=pos.borrow_shares + shares)
        self._set_totals(
            total_borrow_assets=t.total_borrow_assets + assets,
            total_borrow_shares=t.total_borrow_shares + shares,
        )
        try:
            self._check_liquidity()
            if check_health:
                self._check_healthy(account)
        except ValueError:
            self.totals = t
            self.positions[to_checksum_address(account)] = pos
            raise
        self.ledger.transfer(ASSET, MARKET_ADDRESS, account, assets)

    # ── adapter surface ──────────────────────────────────────────────────────

    @status_tuple
    async def get_market_params(self, **_: Any) -> MarketParams:
        return MarketParams(
            loan_token=ASSET_ADDRESS,
            collateral_token=VAULT_ADDRESS,
            oracle=VAULT_ADDRESS,
            irm=MARKET_ADDRESS,
            lltv=self.lltv,
        )

    @status_tuple
    async def get_market_totals(self, **_: Any) -> MarketTotals:
        return self.totals

    @status_tuple
    async def get_position(
        self, *, account: str | None = None, **_: Any
    ) -> MarketPosition:
        return self.position_of(self._account(account))

    @require_wallet
    @status_tuple
    async def supply_collateral(self, *, qty: int, **_: Any) -> str:
        self._check_fail("supply_collateral")
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        self.ledger.transfer(VAULT_SHARE, self.wallet_address, MARKET_ADDRESS, qty)
        pos = self.position_of(self.wallet_address)
        self._set_position(self.wallet_address, collateral=pos.collateral + qty)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def withdraw_collateral(self, *, qty: int, **_: Any) -> str:
        self._check_fail("withdraw_collateral")
        qty = int(qty)
        pos = self.position_of(self.wallet_address)
        if qty <= 0 or qty > pos.collateral:
            raise ValueError(f"cannot withdraw {qty} collateral of {pos.collateral}")
        self._set_position(self.wallet_address, collateral=pos.collateral - qty)
        try:
            self._check_healthy(self.wallet_address)
        except ValueError:
            self._set_position(self.wallet_address, collateral=pos.collateral)
            raise
        self.ledger.transfer(VAULT_SHARE, MARKET_ADDRESS, self.wallet_address, qty)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def lend(self, *, qty: int, **_: Any) -> str:
        self._check_fail("lend")
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        self._supply(self.wallet_address, qty)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def unlend(
        self, *, qty: int, withdraw_full: bool = False, **_: Any
    ) -> str | None:
        self._check_fail("unlend")
        t = self.totals
        pos = self.position_of(self.wallet_address)
        if withdraw_full:
            shares = pos.supply_shares
            if shares == 0:
                return None
            assets = shares * t.total_supply_assets // t.total_supply_shares
        else:
            assets = int(qty)
            if assets <= 0:
                raise ValueError("qty must be positive")
            if t.total_supply_assets == 0:
                raise ValueError("nothing supplied")
            shares = _div_up(assets, t.total_supply_shares, t.total_supply_assets)
        if shares > pos.supply_shares:
            raise ValueError("withdraw exceeds supplied balance")

        self._set_totals(
            total_supply_assets=t.total_supply_assets - assets,
            total_supply_shares=t.total_supply_shares - shares,
        )
        if self.totals.total_borrow_assets > self.totals.total_supply_assets:
            self.totals = t
            raise ValueError("insufficient liquidity")
        self._set_position(self.wallet_address, supply_shares=pos.supply_shares - shares)
        self.ledger.transfer(ASSET, MARKET_ADDRESS, self.wallet_address, assets)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def borrow(self, *, qty: int, **_: Any) -> str:
        self._check_fail("borrow")
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        self._borrow(self.wallet_address, qty, check_health=True)
        return _tx_hash()

    @require_wallet
    @status_tuple
    async def repay(
        self,
        *,
        qty: int,
        on_behalf_of: str | None = None,
        repay_full: bool = False,
        **_: Any,
    ) -> str | None:
        self._check_fail("repay")
        on_behalf = self._account(on_behalf_of)
        t = self.totals
        pos = self.position_of(on_behalf)
        if repay_full:
            shares = pos.borrow_shares
            if shares == 0:
                return None
            assets = _div_up(shares, t.total_borrow_assets, t.total_borrow_shares)
        else:
            assets = int(qty)
            if assets <= 0:
                raise ValueError("qty must be positive")
            if t.total_borrow_assets == 0:
                raise ValueError("nothing borrowed")
            shares = assets * t.total_borrow_shares // t.total_borrow_assets
        if shares > pos.borrow_shares:
            raise ValueError("repay exceeds debt")

        self.ledger.transfer(ASSET, self.wallet_address, MARKET_ADDRESS, assets)
        self._set_position(on_behalf, borrow_shares=pos.borrow_shares - shares)
        self._set_totals(
            total_borrow_assets=max(0, t.total_borrow_assets - assets),
            total_borrow_shares=t.total_borrow_shares - shares,
        )
        return _tx_hash()
