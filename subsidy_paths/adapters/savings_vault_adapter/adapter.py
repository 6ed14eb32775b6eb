from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from eth_utils import to_checksum_address

from subsidy_paths.core.adapters.BaseAdapter import BaseAdapter, require_wallet
from subsidy_paths.core.adapters.decorators import status_tuple
from subsidy_paths.core.adapters.models import VaultTotals
from subsidy_paths.core.constants.base import ADAPTER_SAVINGS_VAULT, MAX_UINT256
from subsidy_paths.core.constants.erc4626_abi import ERC4626_ABI
from subsidy_paths.core.utils.tokens import (
    build_send_transaction,
    ensure_allowance,
    get_token_balance,
)
from subsidy_paths.core.utils.transaction import encode_call, send_transaction
from subsidy_paths.core.utils.web3 import web3_from_chain_id


class SavingsVaultAdapter(BaseAdapter):
    """
    ERC-4626 savings vault whose shares serve as lending-market collateral.

    - Deposit: ``deposit(assets, receiver)`` (underlying -> vault shares)
    - Redeem: ``redeem(shares, receiver, owner)`` (vault shares -> underlying)
    - Totals: ``totalAssets`` / ``totalSupply`` read together so share pricing
      stays consistent within one block.
    """

    adapter_type = ADAPTER_SAVINGS_VAULT

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        sign_callback: Callable | None = None,
        wallet_address: str | None = None,
        *,
        vault_address: str | None = None,
        chain_id: int | None = None,
    ) -> None:
        super().__init__("savings_vault_adapter", config, wallet_address=wallet_address)
        self.sign_callback = sign_callback
        vault = vault_address or self.config.get("savings_vault")
        if not vault:
            raise ValueError("savings_vault address is required")
        self.vault_address = to_checksum_address(str(vault))
        self.chain_id = int(chain_id or self.config.get("chain_id") or 1)
        self._asset: str | None = None

    async def _asset_address(self) -> str:
        if self._asset is None:
            async with web3_from_chain_id(self.chain_id) as web3:
                vault = web3.eth.contract(address=self.vault_address, abi=ERC4626_ABI)
                asset = await vault.functions.asset().call(block_identifier="pending")
            self._asset = to_checksum_address(asset)
        return self._asset

    async def _view(self, fn_name: str, *args: Any) -> int:
        async with web3_from_chain_id(self.chain_id) as web3:
            vault = web3.eth.contract(address=self.vault_address, abi=ERC4626_ABI)
            value = await getattr(vault.functions, fn_name)(*args).call(
                block_identifier="pending"
            )
        return int(value or 0)

    @status_tuple
    async def get_asset(self) -> str:
        return await self._asset_address()

    @status_tuple
    async def get_totals(self) -> VaultTotals:
        total_assets, total_shares = await asyncio.gather(
            self._view("totalAssets"), self._view("totalSupply")
        )
        return VaultTotals(total_assets=total_assets, total_shares=total_shares)

    @status_tuple
    async def convert_to_assets(self, shares: int) -> int:
        return await self._view("convertToAssets", int(shares))

    @status_tuple
    async def convert_to_shares(self, assets: int) -> int:
        return await self._view("convertToShares", int(assets))

    @status_tuple
    async def balance_of(self, account: str | None = None) -> int:
        return await self._view("balanceOf", self._account(account))

    @status_tuple
    async def get_asset_balance(self, account: str | None = None) -> int:
        return await get_token_balance(
            await self._asset_address(), self.chain_id, self._account(account)
        )

    @require_wallet
    @status_tuple
    async def deposit(self, assets: int) -> str:
        assets = int(assets)
        if assets <= 0:
            raise ValueError("assets must be positive")

        ok, res = await ensure_allowance(
            token_address=await self._asset_address(),
            owner=self.wallet_address,
            spender=self.vault_address,
            amount=assets,
            chain_id=self.chain_id,
            signing_callback=self.sign_callback,
            approval_amount=MAX_UINT256,
        )
        if not ok:
            raise RuntimeError(f"approval failed: {res}")

        tx = await encode_call(
            target=self.vault_address,
            abi=ERC4626_ABI,
            fn_name="deposit",
            args=[assets, self.wallet_address],
            from_address=self.wallet_address,
            chain_id=self.chain_id,
        )
        return await send_transaction(tx, self.sign_callback)

    @require_wallet
    @status_tuple
    async def redeem(self, shares: int) -> str:
        shares = int(shares)
        if shares <= 0:
            raise ValueError("shares must be positive")
        tx = await encode_call(
            target=self.vault_address,
            abi=ERC4626_ABI,
            fn_name="redeem",
            args=[shares, self.wallet_address, self.wallet_address],
            from_address=self.wallet_address,
            chain_id=self.chain_id,
        )
        return await send_transaction(tx, self.sign_callback)

    @require_wallet
    @status_tuple
    async def transfer_asset(self, to: str, amount: int) -> str:
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be positive")
        tx = await build_send_transaction(
            from_address=self.wallet_address,
            to_address=to_checksum_address(to),
            token_address=await self._asset_address(),
            chain_id=self.chain_id,
            amount=amount,
        )
        return await send_transaction(tx, self.sign_callback)
