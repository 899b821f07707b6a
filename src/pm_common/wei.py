"""Integer arithmetic utilities for wei-based session balances.

All balances, stakes and payouts are int (wei). Decimal ETH exists only at
the HTTP boundary. No float anywhere.
"""

from decimal import Decimal

WEI_DECIMALS = 18
WEI_PER_ETH = 10**WEI_DECIMALS

# Balance, stake and payout columns are BIGINT
MAX_WEI = 2**63 - 1


def eth_to_wei(amount: Decimal | str | int) -> int:
    """Convert decimal ETH to wei. Rejects sub-wei precision."""
    wei = Decimal(str(amount)).scaleb(WEI_DECIMALS)
    if wei != wei.to_integral_value():
        raise ValueError(f"Amount has more than {WEI_DECIMALS} decimal places: {amount}")
    return int(wei)


def wei_to_eth(wei: int) -> Decimal:
    return Decimal(wei).scaleb(-WEI_DECIMALS)


# Largest amount accepted at the HTTP boundary: 9.223372036854775807 ETH
MAX_ETH = wei_to_eth(MAX_WEI)


def wei_to_display(wei: int) -> str:
    """Render wei as a plain decimal ETH string: 11000000000000000 -> '0.011'."""
    if wei == 0:
        return "0"
    return format(wei_to_eth(wei).normalize(), "f")
