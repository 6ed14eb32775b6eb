import asyncio
import math
from collections.abc import Callable
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3

from subsidy_paths.core.constants.base import (
    DEFAULT_CONFIRMATIONS,
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_GAS_PRICE_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from subsidy_paths.core.constants.chains import PRE_EIP_1559_CHAIN_IDS
from subsidy_paths.core.utils.web3 import (
    get_transaction_chain_id,
    web3_from_chain_id,
    web3s_from_chain_id,
)


class TransactionRevertedError(RuntimeError):
    def __init__(
        self,
        txn_hash: str,
        receipt: dict[str, Any] | None = None,
        message: str | None = None,
    ):
        self.txn_hash = txn_hash
        self.receipt = receipt or {}
        super().__init__(message or f"Transaction reverted: {txn_hash}")


def _get_transaction_from_address(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


async def nonce_transaction(transaction: dict) -> dict:
    transaction = transaction.copy()
    from_address = _get_transaction_from_address(transaction)

    async with web3s_from_chain_id(get_transaction_chain_id(transaction)) as web3s:
        nonces = await asyncio.gather(
            *[
                web3.eth.get_transaction_count(
                    from_address, block_identifier="pending"
                )
                for web3 in web3s
            ]
        )
        transaction["nonce"] = max(nonces)

    return transaction


async def gas_price_transaction(transaction: dict) -> dict:
    transaction = transaction.copy()

    async def _get_base_fee(web3: AsyncWeb3) -> int:
        latest_block = await web3.eth.get_block("latest")
        return latest_block.baseFeePerGas

    async def _get_priority_fee(web3: AsyncWeb3) -> int:
        fee_history = await web3.eth.fee_history(10, "latest", [80])
        rewards = [i[0] for i in fee_history.reward]
        return sum(rewards) // len(rewards) if rewards else 0

    chain_id = get_transaction_chain_id(transaction)
    async with web3s_from_chain_id(chain_id) as web3s:
        if chain_id in PRE_EIP_1559_CHAIN_IDS:
            gas_prices = await asyncio.gather(*[w.eth.gas_price for w in web3s])
            transaction["gasPrice"] = int(
                max(gas_prices) * SUGGESTED_GAS_PRICE_MULTIPLIER
            )
        else:
            base_fee = max(await asyncio.gather(*[_get_base_fee(w) for w in web3s]))
            priority_fee = max(
                await asyncio.gather(*[_get_priority_fee(w) for w in web3s])
            )
            transaction["maxFeePerGas"] = int(
                base_fee * MAX_BASE_FEE_GROWTH_MULTIPLIER
                + priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
            )
            transaction["maxPriorityFeePerGas"] = int(
                priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
            )

    return transaction


async def gas_limit_transaction(transaction: dict) -> dict:
    transaction = transaction.copy()
    transaction.pop("gas", None)

    async def _estimate_gas(web3: AsyncWeb3) -> int:
        try:
            return await web3.eth.estimate_gas(transaction, block_identifier="latest")
        except Exception as e:  # noqa: BLE001
            logger.info(
                f"Failed to estimate gas using {web3.provider.endpoint_uri}. Error: {e}"
            )
            return 0

    async with web3s_from_chain_id(get_transaction_chain_id(transaction)) as web3s:
        gas_limit = max(await asyncio.gather(*[_estimate_gas(w) for w in web3s]))
        if gas_limit == 0:
            logger.error("Gas estimation failed on all RPCs")
            raise RuntimeError("Gas estimation failed on all RPCs")
        transaction["gas"] = int(math.ceil(gas_limit * GAS_BUFFER_MULTIPLIER))

    return transaction


async def wait_for_transaction_receipt(
    chain_id: int,
    txn_hash: str,
    poll_interval: float = 0.5,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
    confirmations: int = DEFAULT_CONFIRMATIONS,
) -> dict:
    async with web3_from_chain_id(chain_id) as web3:
        receipt = await web3.eth.wait_for_transaction_receipt(
            txn_hash, poll_latency=poll_interval, timeout=timeout
        )
        if receipt.get("status") == 0:
            raise TransactionRevertedError(
                txn_hash,
                dict(receipt),
                message=f"Transaction reverted (status=0): {txn_hash}",
            )

        target_block = receipt["blockNumber"] + confirmations - 1
        while await web3.eth.block_number < target_block:
            await asyncio.sleep(poll_interval)
        return dict(receipt)


async def send_transaction(
    transaction: dict, sign_callback: Callable, wait_for_receipt: bool = True
) -> str:
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")

    logger.info(f"Broadcasting transaction {transaction}...")
    chain_id = get_transaction_chain_id(transaction)
    transaction = await gas_limit_transaction(transaction)
    transaction = await nonce_transaction(transaction)
    transaction = await gas_price_transaction(transaction)
    signed_transaction = await sign_callback(transaction)

    async with web3_from_chain_id(chain_id) as web3:
        raw_hash = await web3.eth.send_raw_transaction(signed_transaction)
    txn_hash = raw_hash.hex() if isinstance(raw_hash, bytes) else str(raw_hash)
    if not txn_hash.startswith("0x"):
        txn_hash = f"0x{txn_hash}"
    logger.info(f"Transaction broadcasted: {txn_hash}")

    if wait_for_receipt:
        await wait_for_transaction_receipt(chain_id, txn_hash)
    return txn_hash


def private_key_signer(private_key: str) -> Callable:
    account = Account.from_key(private_key)

    async def sign_callback(tx: dict) -> bytes:
        return account.sign_transaction(tx).raw_transaction

    return sign_callback


async def encode_call(
    *,
    target: str,
    abi: list[dict[str, Any]],
    fn_name: str,
    args: list[Any],
    from_address: str,
    chain_id: int,
    value: int = 0,
) -> dict[str, Any]:
    async with web3_from_chain_id(chain_id) as web3:
        try:
            contract = web3.eth.contract(
                address=web3.to_checksum_address(target),
                abi=abi,
            )
            data = contract.encode_abi(fn_name, args)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc

        return {
            "chainId": int(chain_id),
            "from": AsyncWeb3.to_checksum_address(from_address),
            "to": AsyncWeb3.to_checksum_address(target),
            "data": data,
            "value": int(value),
        }
