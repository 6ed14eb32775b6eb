from __future__ import annotations

from eth_utils import to_checksum_address

# Morpho Blue singleton (same address on every chain it is deployed to).
MORPHO_BLUE_ADDRESS = to_checksum_address("0xBBBBBbbBBb9cC5e90e3b3Af64bdAF62C37EEFFCb")

MORPHO_BY_CHAIN: dict[int, str] = {
    1: MORPHO_BLUE_ADDRESS,
    8453: MORPHO_BLUE_ADDRESS,
}
