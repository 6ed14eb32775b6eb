from collections.abc import Callable
from typing import Any

from web3 import AsyncWeb3

from subsidy_paths.core.constants.erc20_abi import ERC20_ABI
from subsidy_paths.core.utils.transaction import send_transaction
from subsidy_paths.core.utils.web3 import web3_from_chain_id


async def get_token_balance(
    token_address: str,
    chain_id: int,
    wallet_address: str,
    *,
    web3: AsyncWeb3 | None = None,
    block_identifier: int | str = "pending",
) -> int:
    async def _read_with_web3(w3: AsyncWeb3) -> int:
        contract = w3.eth.contract(
            address=w3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        balance = await contract.functions.balanceOf(
            w3.to_checksum_address(wallet_address)
        ).call(block_identifier=block_identifier)
        return int(balance or 0)

    if web3 is not None:
        return await _read_with_web3(web3)
    async with web3_from_chain_id(chain_id) as w3:
        return await _read_with_web3(w3)


async def get_token_allowance(
    token_address: str, chain_id: int, owner_address: str, spender_address: str
) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        contract = web3.eth.contract(
            address=web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        return await contract.functions.allowance(
            web3.to_checksum_address(owner_address),
            web3.to_checksum_address(spender_address),
        ).call(block_identifier="pending")


async def _build_erc20_call(
    *,
    fn_name: str,
    from_address: str,
    chain_id: int,
    token_address: str,
    args: list[Any],
) -> dict:
    async with web3_from_chain_id(chain_id) as web3:
        contract = web3.eth.contract(
            address=web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        return {
            "to": web3.to_checksum_address(token_address),
            "from": web3.to_checksum_address(from_address),
            "data": contract.encode_abi(fn_name, args),
            "chainId": chain_id,
        }


async def build_approve_transaction(
    from_address: str,
    chain_id: int,
    token_address: str,
    spender_address: str,
    amount: int,
) -> dict:
    return await _build_erc20_call(
        fn_name="approve",
        from_address=from_address,
        chain_id=chain_id,
        token_address=token_address,
        args=[AsyncWeb3.to_checksum_address(spender_address), int(amount)],
    )


async def build_send_transaction(
    from_address: str,
    to_address: str,
    token_address: str,
    chain_id: int,
    amount: int,
) -> dict:
    return await _build_erc20_call(
        fn_name="transfer",
        from_address=from_address,
        chain_id=chain_id,
        token_address=token_address,
        args=[AsyncWeb3.to_checksum_address(to_address), int(amount)],
    )


async def ensure_allowance(
    *,
    token_address: str,
    owner: str,
    spender: str,
    amount: int,
    chain_id: int,
    signing_callback: Callable,
    approval_amount: int | None = None,
) -> tuple[bool, Any]:
    allowance = await get_token_allowance(token_address, chain_id, owner, spender)
    if allowance >= amount:
        return True, {}

    approve_tx = await build_approve_transaction(
        from_address=owner,
        chain_id=chain_id,
        token_address=token_address,
        spender_address=spender,
        amount=approval_amount if approval_amount is not None else amount,
    )
    txn_hash = await send_transaction(approve_tx, signing_callback)
    return True, txn_hash
