"""Gas cost estimation utilities."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, localcontext

from config import DEFAULT_GAS_LIMIT, FIXED_USD_RATE

_GWEI_PER_NATIVE = Decimal("1e9")
_NATIVE_PLACES = Decimal("0.000001")
_USD_PLACES = Decimal("0.01")

# Enough digits to quantize any product of float-sized inputs exactly
_PRECISION = 1000


def _to_decimal(value: float | int | str | Decimal) -> Decimal:
    # str() first so 0.1 stays 0.1 instead of its binary expansion
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class CostEstimate:
    chain: str
    gas_price_gwei: float
    gas_limit: int
    gas_cost_native: Decimal
    gas_cost_usd: Decimal

    def to_dict(self) -> dict:
        """Wire form returned by the simulate endpoint."""
        return {
            "chain": self.chain,
            "gasPriceGwei": self.gas_price_gwei,
            "gasLimit": self.gas_limit,
            "gasCostInEth": float(self.gas_cost_native),
            "gasCostInUsd": float(self.gas_cost_usd),
        }


def estimate_cost(
    price_gwei: float | Decimal,
    gas_limit: int,
    amount: float | Decimal,
    usd_rate: float | Decimal = FIXED_USD_RATE,
) -> tuple[Decimal, Decimal]:
    """
    Estimate the cost of a transfer.

    Args:
        price_gwei: Gas price in gwei
        gas_limit: Gas units consumed by the transfer
        amount: Transfer amount in the chain's native unit
        usd_rate: Native-unit -> USD multiplier

    Returns:
        (cost in native unit rounded to 6 places, cost in USD rounded to 2 places)
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        cost_native = (_to_decimal(price_gwei) * gas_limit / _GWEI_PER_NATIVE).quantize(
            _NATIVE_PLACES, rounding=ROUND_HALF_UP,
        )
        cost_usd = (cost_native * _to_decimal(amount) * _to_decimal(usd_rate)).quantize(
            _USD_PLACES, rounding=ROUND_HALF_UP,
        )
    return cost_native, cost_usd


def build_estimate(
    chain: str,
    price_gwei: float,
    amount: float | Decimal,
    usd_rate: float | Decimal = FIXED_USD_RATE,
    gas_limit: int = DEFAULT_GAS_LIMIT,
) -> CostEstimate:
    cost_native, cost_usd = estimate_cost(price_gwei, gas_limit, amount, usd_rate)
    return CostEstimate(
        chain=chain,
        gas_price_gwei=price_gwei,
        gas_limit=gas_limit,
        gas_cost_native=cost_native,
        gas_cost_usd=cost_usd,
    )


__all__ = ["CostEstimate", "estimate_cost", "build_estimate"]
