GAS_BUFFER_MULTIPLIER = 1.2
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
SUGGESTED_GAS_PRICE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# Mainnet receipts for multi-step unwinds can lag behind inclusion on busy
# RPCs; the receipt timeout is deliberately generous.
DEFAULT_TRANSACTION_TIMEOUT = 300  # seconds
DEFAULT_CONFIRMATIONS = 2

ADAPTER_MORPHO = "MORPHO"
ADAPTER_SAVINGS_VAULT = "SAVINGS_VAULT"

# WAD fixed-point scale shared by Morpho (lltv) and withdraw ratios.
MANTISSA = 10**18
MAX_BPS = 10_000
MAX_UINT256 = 2**256 - 1

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
