from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from subsidy_paths.core.adapters.BaseAdapter import BaseAdapter, require_wallet
from subsidy_paths.core.adapters.decorators import status_tuple
from subsidy_paths.core.adapters.models import MarketParams, MarketPosition, MarketTotals
from subsidy_paths.core.constants.base import ADAPTER_MORPHO, MAX_UINT256
from subsidy_paths.core.constants.morpho_abi import MORPHO_BLUE_ABI
from subsidy_paths.core.constants.morpho_constants import MORPHO_BY_CHAIN
from subsidy_paths.core.utils import web3 as web3_utils
from subsidy_paths.core.utils.tokens import ensure_allowance
from subsidy_paths.core.utils.transaction import encode_call, send_transaction


def _market_id_bytes(market_unique_key: str) -> bytes:
    key = str(market_unique_key)
    raw = bytes.fromhex(key[2:] if key.startswith("0x") else key)
    if len(raw) != 32:
        raise ValueError(f"Invalid Morpho market id: {market_unique_key}")
    return raw


class MorphoAdapter(BaseAdapter):
    """Isolated Morpho Blue market access for one strategy wallet.

    Reads go straight to the Morpho singleton (``position``, ``market``,
    ``idToMarketParams``); writes are encoded against the same contract and
    sent through ``sign_callback``.
    """

    adapter_type = ADAPTER_MORPHO

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        sign_callback=None,
        wallet_address: str | None = None,
    ) -> None:
        super().__init__("morpho_adapter", config, wallet_address=wallet_address)
        self.sign_callback = sign_callback
        self._market_params_cache: dict[tuple[int, str], MarketParams] = {}

    def _morpho_address(self, *, chain_id: int) -> str:
        configured = self.config.get("morpho_address")
        if configured:
            return to_checksum_address(str(configured))
        addr = MORPHO_BY_CHAIN.get(int(chain_id))
        if not addr:
            raise ValueError(f"Morpho Blue not configured for chain_id={chain_id}")
        return addr

    async def _read(self, *, chain_id: int, fn_name: str, args: list[Any]) -> Any:
        morpho = self._morpho_address(chain_id=chain_id)
        async with web3_utils.web3_from_chain_id(int(chain_id)) as web3:
            contract = web3.eth.contract(address=morpho, abi=MORPHO_BLUE_ABI)
            fn = getattr(contract.functions, fn_name)
            return await fn(*args).call(block_identifier="pending")

    async def _send(
        self, *, chain_id: int, fn_name: str, args: list[Any]
    ) -> str:
        tx = await encode_call(
            target=self._morpho_address(chain_id=chain_id),
            abi=MORPHO_BLUE_ABI,
            fn_name=fn_name,
            args=args,
            from_address=self.wallet_address,
            chain_id=int(chain_id),
        )
        return await send_transaction(tx, self.sign_callback)

    async def _approve(self, *, chain_id: int, token: str, qty: int) -> None:
        ok, res = await ensure_allowance(
            token_address=token,
            owner=self.wallet_address,
            spender=self._morpho_address(chain_id=chain_id),
            amount=qty,
            chain_id=int(chain_id),
            signing_callback=self.sign_callback,
            approval_amount=MAX_UINT256,
        )
        if not ok:
            raise RuntimeError(f"approval failed: {res}")

    async def _params(self, *, chain_id: int, market_unique_key: str) -> MarketParams:
        cache_key = (int(chain_id), str(market_unique_key).lower())
        if cached := self._market_params_cache.get(cache_key):
            return cached
        loan, collateral, oracle, irm, lltv = await self._read(
            chain_id=chain_id,
            fn_name="idToMarketParams",
            args=[_market_id_bytes(market_unique_key)],
        )
        params = MarketParams(
            loan_token=to_checksum_address(loan),
            collateral_token=to_checksum_address(collateral),
            oracle=to_checksum_address(oracle),
            irm=to_checksum_address(irm),
            lltv=int(lltv),
        )
        if int(params.lltv) <= 0:
            raise ValueError(f"Unknown Morpho market {market_unique_key}")
        self._market_params_cache[cache_key] = params
        return params

    @status_tuple
    async def get_market_params(
        self, *, chain_id: int, market_unique_key: str
    ) -> MarketParams:
        return await self._params(chain_id=chain_id, market_unique_key=market_unique_key)

    @status_tuple
    async def get_market_totals(
        self, *, chain_id: int, market_unique_key: str
    ) -> MarketTotals:
        (
            total_supply_assets,
            total_supply_shares,
            total_borrow_assets,
            total_borrow_shares,
            _last_update,
            _fee,
        ) = await self._read(
            chain_id=chain_id,
            fn_name="market",
            args=[_market_id_bytes(market_unique_key)],
        )
        return MarketTotals(
            total_supply_assets=int(total_supply_assets),
            total_supply_shares=int(total_supply_shares),
            total_borrow_assets=int(total_borrow_assets),
            total_borrow_shares=int(total_borrow_shares),
        )

    async def _position(
        self, *, chain_id: int, market_unique_key: str, account: str
    ) -> MarketPosition:
        supply_shares, borrow_shares, collateral = await self._read(
            chain_id=chain_id,
            fn_name="position",
            args=[_market_id_bytes(market_unique_key), to_checksum_address(account)],
        )
        return MarketPosition(
            supply_shares=int(supply_shares),
            borrow_shares=int(borrow_shares),
            collateral=int(collateral),
        )

    @status_tuple
    async def get_position(
        self,
        *,
        chain_id: int,
        market_unique_key: str,
        account: str | None = None,
    ) -> MarketPosition:
        return await self._position(
            chain_id=chain_id,
            market_unique_key=market_unique_key,
            account=self._account(account),
        )

    @require_wallet
    @status_tuple
    async def supply_collateral(
        self, *, chain_id: int, market_unique_key: str, qty: int
    ) -> str:
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        params = await self._params(chain_id=chain_id, market_unique_key=market_unique_key)
        await self._approve(chain_id=chain_id, token=params.collateral_token, qty=qty)
        return await self._send(
            chain_id=chain_id,
            fn_name="supplyCollateral",
            args=[params.as_tuple(), qty, self.wallet_address, b""],
        )

    @require_wallet
    @status_tuple
    async def withdraw_collateral(
        self, *, chain_id: int, market_unique_key: str, qty: int
    ) -> str:
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        params = await self._params(chain_id=chain_id, market_unique_key=market_unique_key)
        return await self._send(
            chain_id=chain_id,
            fn_name="withdrawCollateral",
            args=[params.as_tuple(), qty, self.wallet_address, self.wallet_address],
        )

    @require_wallet
    @status_tuple
    async def lend(self, *, chain_id: int, market_unique_key: str, qty: int) -> str:
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        params = await self._params(chain_id=chain_id, market_unique_key=market_unique_key)
        await self._approve(chain_id=chain_id, token=params.loan_token, qty=qty)
        return await self._send(
            chain_id=chain_id,
            fn_name="supply",
            args=[params.as_tuple(), qty, 0, self.wallet_address, b""],
        )

    @require_wallet
    @status_tuple
    async def unlend(
        self,
        *,
        chain_id: int,
        market_unique_key: str,
        qty: int,
        withdraw_full: bool = False,
    ) -> str | None:
        qty = int(qty)
        if qty <= 0 and not withdraw_full:
            raise ValueError("qty must be positive")
        params = await self._params(chain_id=chain_id, market_unique_key=market_unique_key)

        withdraw_assets, withdraw_shares = qty, 0
        if withdraw_full:
            pos = await self._position(
                chain_id=chain_id,
                market_unique_key=market_unique_key,
                account=self.wallet_address,
            )
            if pos.supply_shares <= 0:
                return None
            withdraw_assets, withdraw_shares = 0, pos.supply_shares

        return await self._send(
            chain_id=chain_id,
            fn_name="withdraw",
            args=[
                params.as_tuple(),
                int(withdraw_assets),
                int(withdraw_shares),
                self.wallet_address,
                self.wallet_address,
            ],
        )

    @require_wallet
    @status_tuple
    async def borrow(self, *, chain_id: int, market_unique_key: str, qty: int) -> str:
        qty = int(qty)
        if qty <= 0:
            raise ValueError("qty must be positive")
        params = await self._params(chain_id=chain_id, market_unique_key=market_unique_key)
        return await self._send(
            chain_id=chain_id,
            fn_name="borrow",
            args=[params.as_tuple(), qty, 0, self.wallet_address, self.wallet_address],
        )

    @require_wallet
    @status_tuple
    async def repay(
        self,
        *,
        chain_id: int,
        market_unique_key: str,
        qty: int,
        on_behalf_of: str | None = None,
        repay_full: bool = False,
    ) -> str | None:
        qty = int(qty)
        if qty <= 0 and not repay_full:
            raise ValueError("qty must be positive")
        on_behalf = self._account(on_behalf_of)
        params = await self._params(chain_id=chain_id, market_unique_key=market_unique_key)

        repay_assets, repay_shares, allowance_target = qty, 0, qty
        if repay_full:
            pos = await self._position(
                chain_id=chain_id,
                market_unique_key=market_unique_key,
                account=on_behalf,
            )
            if pos.borrow_shares <= 0:
                return None
            repay_assets, repay_shares = 0, pos.borrow_shares
            allowance_target = MAX_UINT256

        await self._approve(
            chain_id=chain_id, token=params.loan_token, qty=allowance_target
        )
        return await self._send(
            chain_id=chain_id,
            fn_name="repay",
            args=[
                params.as_tuple(),
                int(repay_assets),
                int(repay_shares),
                on_behalf,
                b"",
            ],
        )
