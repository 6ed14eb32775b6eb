import copy
from unittest.mock import AsyncMock, patch

import pytest

import subsidy_paths.core.config as config
from subsidy_paths.core.utils.web3 import (
    _get_rpcs_for_chain_id,
    web3_from_chain_id,
    web3s_from_chain_id,
)


@pytest.fixture
def restore_global_config() -> None:
    original = copy.deepcopy(config.CONFIG)
    yield
    config.set_config(original)


def test_string_keys_take_precedence(restore_global_config: None):
    config.set_config(
        {"strategy": {"rpc_urls": {"1": "https://str.invalid", 1: "https://int.invalid"}}}
    )
    assert _get_rpcs_for_chain_id(1) == ["https://str.invalid"]


def test_unknown_chain_raises(restore_global_config: None):
    config.set_config({"strategy": {"rpc_urls": {"1": "https://a.invalid"}}})
    with pytest.raises(ValueError, match="8453"):
        _get_rpcs_for_chain_id(8453)


@pytest.mark.asyncio
async def test_web3_from_chain_id_uses_first_rpc_and_disconnects(
    restore_global_config: None,
):
    config.set_config(
        {"strategy": {"rpc_urls": {"1": ["https://a.invalid", "https://b.invalid"]}}}
    )
    with patch(
        "web3.AsyncHTTPProvider.disconnect", new_callable=AsyncMock
    ) as disconnect:
        async with web3_from_chain_id(1) as web3:
            assert web3.provider.endpoint_uri == "https://a.invalid"
        disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_web3s_disconnect_even_on_error(restore_global_config: None):
    config.set_config(
        {"strategy": {"rpc_urls": {"1": ["https://a.invalid", "https://b.invalid"]}}}
    )
    with patch(
        "web3.AsyncHTTPProvider.disconnect", new_callable=AsyncMock
    ) as disconnect:
        with pytest.raises(RuntimeError, match="boom"):
            async with web3s_from_chain_id(1) as web3s:
                assert len(web3s) == 2
                raise RuntimeError("boom")
        assert disconnect.await_count == 2
