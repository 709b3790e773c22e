from predindex.pricing.cpmm import (
    SCALE,
    ImpliedPrice,
    Quote,
    effective_price,
    implied_price,
    min_shares_out,
    payout,
    quote,
)

__all__ = [
    "SCALE",
    "ImpliedPrice",
    "Quote",
    "effective_price",
    "implied_price",
    "min_shares_out",
    "payout",
    "quote",
]
