from fractions import Fraction

# Swap fee charged by Uniswap V2 pools and their forks
UNISWAP_V2_FEE = Fraction(3, 1000)


def sort_token_addresses(token_a: str, token_b: str) -> tuple[str, str]:
    """
    Order two token addresses the way a V2 pool stores them: the numerically lower address is
    `token0`.
    """

    return (token_a, token_b) if int(token_a, 16) < int(token_b, 16) else (token_b, token_a)


def constant_product_calc_exact_in(
    amount_in: int,
    reserves_in: int,
    reserves_out: int,
    fee: Fraction = UNISWAP_V2_FEE,
) -> int:
    """
    Calculate the amount out for an exact input from a constant product (x*y=k) invariant pool.
    """

    return (amount_in * (fee.denominator - fee.numerator) * reserves_out) // (
        reserves_in * fee.denominator + amount_in * (fee.denominator - fee.numerator)
    )


def constant_product_calc_exact_out(
    amount_out: int,
    reserves_in: int,
    reserves_out: int,
    fee: Fraction = UNISWAP_V2_FEE,
) -> int:
    """
    Calculate the amount in necessary for an exact output swap through a constant product (x*y=k)
    invariant pool.
    """

    return 1 + (reserves_in * amount_out * fee.denominator) // (
        (reserves_out - amount_out) * (fee.denominator - fee.numerator)
    )
