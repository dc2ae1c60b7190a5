"""
Decide the corrective action for a token pair from a single reserve snapshot.

The price of a pair is `supply_0 / supply_1`. Inside the allowed band nothing happens. Outside it,
the calculator picks a goal ratio at the far edge of the target band and sizes a swap that moves
the pool toward it. The size of the purchase comes from a closed-form solve, and the matching sale
amount comes from the router, which applies the pool's fee and real curve.
"""

import enum
from collections.abc import Sequence
from decimal import Decimal, localcontext
from typing import Protocol

from eth_typing import ChecksumAddress

from pegkeeper.exceptions import DivisionByZero, InvariantViolation, PegKeeperValueError
from pegkeeper.fixed_point import (
    DECIMAL_CONTEXT,
    from_base_units,
    is_within_range,
    to_base_units,
)
from pegkeeper.logging import logger
from pegkeeper.types import (
    ContractAndSell,
    ExpandAndBuy,
    KeeperAction,
    NoAction,
    ReserveSnapshot,
    SwapDetails,
    TokenPair,
)
from pegkeeper.uniswap.v2_functions import constant_product_calc_exact_out


class RebalanceStrategy(enum.StrEnum):
    # Linearized solve around parity, assuming the total pool supply is conserved
    LINEAR = "linear"
    # Exact solve against x*y=k, ignoring the fee
    CONSTANT_PRODUCT = "constant_product"


class AmountsInQuoter(Protocol):
    def get_amounts_in(self, amount_out: int, path: Sequence[ChecksumAddress]) -> list[int]: ...


def get_dex_price(snapshot: ReserveSnapshot) -> Decimal:
    """
    Get the price of the pair, expressed as the token 0 supply per unit of token 1 supply.
    """

    if snapshot.supply_1 == 0:
        raise DivisionByZero(message=f"Pool {snapshot.pool} has no token 1 reserves.")

    with localcontext(DECIMAL_CONTEXT):
        return snapshot.supply_0 / snapshot.supply_1


def linear_expected_supply(total_supply: Decimal, goal_ratio: Decimal) -> Decimal:
    """
    Estimate the token 0 supply that produces `goal_ratio`, linearized around an even split of
    `total_supply`.

    The exact value for a conserved total is `goal * total / (1 + goal)`, and this is its first
    order expansion around `goal = 1`. The estimate drifts from the exact value as the goal moves
    away from parity, and it ignores that a swap does not conserve the total supply. The router
    quote for the opposite leg absorbs the difference.
    """

    with localcontext(DECIMAL_CONTEXT):
        return total_supply / 2 + ((goal_ratio - 1) / 4) * total_supply


def calculate_quantity_to_buy(
    snapshot: ReserveSnapshot,
    goal_ratio: Decimal,
    *,
    supply_0_is_overvalued: bool,
    strategy: RebalanceStrategy = RebalanceStrategy.LINEAR,
) -> Decimal:
    """
    Calculate the quantity to buy from the pool to move its price to `goal_ratio`. When token 0
    supply is overvalued the quantity is denominated in token 0, otherwise in token 1.
    """

    supply_0, supply_1 = snapshot.supply_0, snapshot.supply_1

    with localcontext(DECIMAL_CONTEXT):
        match strategy:
            case RebalanceStrategy.LINEAR:
                expected_supply_0 = linear_expected_supply(supply_0 + supply_1, goal_ratio)
                logger.debug(f"Expected token 0 supply after rebalance: {expected_supply_0}")
                if supply_0_is_overvalued:
                    return supply_0 - expected_supply_0
                return expected_supply_0 - supply_0
            case RebalanceStrategy.CONSTANT_PRODUCT:
                invariant = supply_0 * supply_1
                if supply_0_is_overvalued:
                    return supply_0 - (invariant * goal_ratio).sqrt()
                return supply_1 - (invariant / goal_ratio).sqrt()
            case _:
                raise PegKeeperValueError(message=f"Unknown rebalance strategy {strategy!r}")


def calculate_rebalance(
    pair: TokenPair,
    snapshot: ReserveSnapshot,
    *,
    ratio_range_allowed: tuple[Decimal, Decimal],
    ratio_range_targets: tuple[Decimal, Decimal],
    router: AmountsInQuoter,
    strategy: RebalanceStrategy = RebalanceStrategy.LINEAR,
) -> KeeperAction:
    """
    Choose the action for the pair and size the corrective swap.

    The router is only consulted when the price is outside the allowed band.
    """

    dex_price = get_dex_price(snapshot)

    if is_within_range(dex_price, ratio_range_allowed):
        return NoAction(
            SwapDetails(
                dex_price=dex_price,
                token_to_sell=pair.token_0,
                amount_to_sell=Decimal(0),
                token_to_buy=pair.token_1,
                amount_to_buy_min=Decimal(0),
                path=(),
            )
        )

    supply_0_is_overvalued = dex_price > 1
    goal_ratio = ratio_range_targets[1] if supply_0_is_overvalued else ratio_range_targets[0]
    logger.debug(
        f"{pair.symbol} out of band: price={dex_price}, goal={goal_ratio}, "
        f"supply_0={snapshot.supply_0}, supply_1={snapshot.supply_1}"
    )

    quantity_to_buy = calculate_quantity_to_buy(
        snapshot,
        goal_ratio,
        supply_0_is_overvalued=supply_0_is_overvalued,
        strategy=strategy,
    )
    if quantity_to_buy < 0:
        raise InvariantViolation(
            message=f"Negative purchase quantity {quantity_to_buy} for {pair.symbol} "
            f"at price {dex_price} with goal {goal_ratio}"
        )

    if supply_0_is_overvalued:
        token_to_sell, token_to_buy = pair.token_1, pair.token_0
    else:
        token_to_sell, token_to_buy = pair.token_0, pair.token_1
    path = (token_to_sell.address, token_to_buy.address)

    amount_out = to_base_units(quantity_to_buy, token_to_buy.decimals)
    if amount_out == 0:
        raise InvariantViolation(
            message=f"Purchase quantity {quantity_to_buy} {token_to_buy} rounds to zero base units"
        )

    amounts_in = router.get_amounts_in(amount_out, path)
    amount_to_sell = from_base_units(amounts_in[0], token_to_sell.decimals)
    logger.debug(
        f"Router quote: {amounts_in[0]} {token_to_sell} in for {amount_out} {token_to_buy} out"
    )

    if supply_0_is_overvalued:
        reserves_in, reserves_out = snapshot.reserves_1, snapshot.reserves_0
    else:
        reserves_in, reserves_out = snapshot.reserves_0, snapshot.reserves_1
    if amount_out < reserves_out:
        pool_estimate = constant_product_calc_exact_out(amount_out, reserves_in, reserves_out)
        if pool_estimate != amounts_in[0]:
            logger.debug(
                f"Router quote differs from the {snapshot.pool} reserves estimate of "
                f"{pool_estimate} {token_to_sell} in"
            )

    with localcontext(DECIMAL_CONTEXT):
        if supply_0_is_overvalued:
            projected_supply_0 = snapshot.supply_0 - quantity_to_buy
            projected_supply_1 = snapshot.supply_1 + amount_to_sell
        else:
            projected_supply_0 = snapshot.supply_0 + amount_to_sell
            projected_supply_1 = snapshot.supply_1 - quantity_to_buy
        if projected_supply_1 <= 0:
            raise InvariantViolation(
                message=f"Purchase quantity {quantity_to_buy} exhausts the {pair.symbol} pool"
            )
        projected_price = projected_supply_0 / projected_supply_1
    logger.debug(f"{pair.symbol} projected price after swap: {projected_price}")

    swap_details = SwapDetails(
        dex_price=dex_price,
        token_to_sell=token_to_sell,
        amount_to_sell=amount_to_sell,
        token_to_buy=token_to_buy,
        amount_to_buy_min=quantity_to_buy,
        path=path,
    )

    if supply_0_is_overvalued:
        return ExpandAndBuy(swap_details)
    return ContractAndSell(swap_details)
