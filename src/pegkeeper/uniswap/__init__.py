from .v2_functions import (
    UNISWAP_V2_FEE,
    constant_product_calc_exact_in,
    constant_product_calc_exact_out,
    sort_token_addresses,
)
from .v2_reader import UniswapV2Factory, UniswapV2ReserveReader, UniswapV2Router

__all__ = (
    "UNISWAP_V2_FEE",
    "UniswapV2Factory",
    "UniswapV2ReserveReader",
    "UniswapV2Router",
    "constant_product_calc_exact_in",
    "constant_product_calc_exact_out",
    "sort_token_addresses",
)
