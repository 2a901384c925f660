ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1

BPS_DENOMINATOR = 10_000
