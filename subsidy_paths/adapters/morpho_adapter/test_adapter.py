from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from subsidy_paths.adapters.morpho_adapter.adapter import MorphoAdapter
from subsidy_paths.core.adapters.models import MarketParams, MarketPosition
from subsidy_paths.core.constants.base import MAX_UINT256
from subsidy_paths.core.constants.chains import CHAIN_ID_BASE
from subsidy_paths.core.constants.morpho_constants import MORPHO_BLUE_ADDRESS

MARKET_KEY = "0x" + "11" * 32
BORROWER = "0x000000000000000000000000000000000000bEEF"

PARAMS = MarketParams(
    loan_token="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    collateral_token="0x4200000000000000000000000000000000000006",
    oracle="0xD09048c8B568Dbf5f189302beA26c9edABFC4858",
    irm="0x46415998764C29aB2a25CbeA6254146D50D22687",
    lltv=860000000000000000,
)


@pytest.fixture
def adapter():
    return MorphoAdapter(
        config={},
        sign_callback=AsyncMock(return_value=b"\x00" * 65),
        wallet_address="0x81830bC5f811aF86fF6f17Fb9a619088B09Dff43",
    )


def _patched_writes():
    return (
        patch(
            "subsidy_paths.adapters.morpho_adapter.adapter.ensure_allowance",
            new=AsyncMock(return_value=(True, None)),
        ),
        patch(
            "subsidy_paths.adapters.morpho_adapter.adapter.encode_call",
            new=AsyncMock(return_value={"chainId": CHAIN_ID_BASE}),
        ),
        patch(
            "subsidy_paths.adapters.morpho_adapter.adapter.send_transaction",
            new=AsyncMock(return_value="0xabc"),
        ),
    )


def test_adapter_type(adapter):
    assert adapter.adapter_type == "MORPHO"


def test_strategy_address_optional():
    a = MorphoAdapter(config={})
    assert a.wallet_address is None


def test_morpho_address_from_config_overrides_chain_default():
    a = MorphoAdapter(config={"morpho_address": "0x" + "ab" * 20})
    assert a._morpho_address(chain_id=CHAIN_ID_BASE).lower() == "0x" + "ab" * 20
    assert MorphoAdapter()._morpho_address(chain_id=CHAIN_ID_BASE) == MORPHO_BLUE_ADDRESS


@pytest.mark.asyncio
async def test_writes_require_wallet():
    a = MorphoAdapter(config={})
    ok, msg = await a.borrow(chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY, qty=1)
    assert ok is False
    assert "wallet" in msg


@pytest.mark.asyncio
async def test_get_market_params_caches(adapter):
    raw = (
        PARAMS.loan_token,
        PARAMS.collateral_token,
        PARAMS.oracle,
        PARAMS.irm,
        PARAMS.lltv,
    )
    with patch.object(adapter, "_read", new=AsyncMock(return_value=raw)) as mock_read:
        ok, first = await adapter.get_market_params(
            chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY
        )
        ok2, second = await adapter.get_market_params(
            chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY
        )

    assert ok and ok2
    assert first == second == PARAMS
    mock_read.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_market_totals_maps_fields(adapter):
    with patch.object(
        adapter, "_read", new=AsyncMock(return_value=(1_000, 900, 400, 380, 0, 0))
    ):
        ok, totals = await adapter.get_market_totals(
            chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY
        )

    assert ok is True
    assert totals.total_supply_assets == 1_000
    assert totals.total_borrow_shares == 380
    assert totals.liquidity == 600


@pytest.mark.asyncio
async def test_invalid_market_key_fails(adapter):
    ok, msg = await adapter.get_market_totals(
        chain_id=CHAIN_ID_BASE, market_unique_key="0x1234"
    )
    assert ok is False
    assert "Invalid Morpho market id" in msg


@pytest.mark.asyncio
async def test_lend_encodes_supply(adapter):
    allow, encode, send = _patched_writes()
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        allow as mock_allow,
        encode as mock_encode,
        send,
    ):
        ok, tx = await adapter.lend(
            chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY, qty=123
        )

    assert ok is True
    assert tx == "0xabc"
    assert mock_allow.await_args.kwargs["token_address"] == PARAMS.loan_token
    assert mock_allow.await_args.kwargs["approval_amount"] == MAX_UINT256
    assert mock_encode.await_args.kwargs["fn_name"] == "supply"
    assert mock_encode.await_args.kwargs["args"][1:3] == [123, 0]


@pytest.mark.asyncio
async def test_supply_collateral_uses_collateral_token(adapter):
    allow, encode, send = _patched_writes()
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        allow as mock_allow,
        encode as mock_encode,
        send,
    ):
        ok, _ = await adapter.supply_collateral(
            chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY, qty=500
        )

    assert ok is True
    assert mock_allow.await_args.kwargs["token_address"] == PARAMS.collateral_token
    assert mock_encode.await_args.kwargs["fn_name"] == "supplyCollateral"


@pytest.mark.asyncio
async def test_repay_on_behalf_of_borrower(adapter):
    allow, encode, send = _patched_writes()
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        allow,
        encode as mock_encode,
        send,
    ):
        ok, _ = await adapter.repay(
            chain_id=CHAIN_ID_BASE,
            market_unique_key=MARKET_KEY,
            qty=42,
            on_behalf_of=BORROWER,
        )

    assert ok is True
    args = mock_encode.await_args.kwargs["args"]
    assert args[1:4] == [42, 0, BORROWER]


@pytest.mark.asyncio
async def test_repay_full_uses_shares(adapter):
    allow, encode, send = _patched_writes()
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        patch.object(
            adapter,
            "_position",
            new=AsyncMock(return_value=MarketPosition(borrow_shares=999)),
        ),
        allow as mock_allow,
        encode as mock_encode,
        send,
    ):
        ok, _ = await adapter.repay(
            chain_id=CHAIN_ID_BASE,
            market_unique_key=MARKET_KEY,
            qty=0,
            repay_full=True,
        )

    assert ok is True
    assert mock_allow.await_args.kwargs["amount"] == MAX_UINT256
    args = mock_encode.await_args.kwargs["args"]
    assert args[1] == 0
    assert args[2] == 999


@pytest.mark.asyncio
async def test_repay_full_noop_without_debt(adapter):
    allow, encode, send = _patched_writes()
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        patch.object(
            adapter, "_position", new=AsyncMock(return_value=MarketPosition())
        ),
        allow,
        encode as mock_encode,
        send,
    ):
        ok, tx = await adapter.repay(
            chain_id=CHAIN_ID_BASE,
            market_unique_key=MARKET_KEY,
            qty=0,
            repay_full=True,
        )

    assert ok is True
    assert tx is None
    mock_encode.assert_not_awaited()


@pytest.mark.asyncio
async def test_withdraw_full_uses_shares(adapter):
    allow, encode, send = _patched_writes()
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        patch.object(
            adapter,
            "_position",
            new=AsyncMock(return_value=MarketPosition(supply_shares=777)),
        ),
        allow,
        encode as mock_encode,
        send,
    ):
        ok, _ = await adapter.unlend(
            chain_id=CHAIN_ID_BASE,
            market_unique_key=MARKET_KEY,
            qty=0,
            withdraw_full=True,
        )

    assert ok is True
    args = mock_encode.await_args.kwargs["args"]
    assert args[1] == 0
    assert args[2] == 777


@pytest.mark.asyncio
async def test_borrow_rejects_non_positive(adapter):
    ok, msg = await adapter.borrow(
        chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY, qty=0
    )
    assert ok is False
    assert "positive" in msg


@pytest.mark.asyncio
async def test_send_failure_surfaces_as_status(adapter):
    with (
        patch.object(adapter, "_params", new=AsyncMock(return_value=PARAMS)),
        patch(
            "subsidy_paths.adapters.morpho_adapter.adapter.encode_call",
            new=AsyncMock(return_value={"chainId": CHAIN_ID_BASE}),
        ),
        patch(
            "subsidy_paths.adapters.morpho_adapter.adapter.send_transaction",
            new=AsyncMock(side_effect=RuntimeError("execution reverted")),
        ),
    ):
        ok, msg = await adapter.withdraw_collateral(
            chain_id=CHAIN_ID_BASE, market_unique_key=MARKET_KEY, qty=5
        )

    assert ok is False
    assert "execution reverted" in msg
