"""
Uniswap V3 Liquidity Mathematics

Формулы из whitepaper:
- L = amount0 * (sqrt(upper) * sqrt(lower)) / (sqrt(upper) - sqrt(lower))
- L = amount1 / (sqrt(upper) - sqrt(lower))

Когда текущая цена в диапазоне:
- L = amount0 * (sqrt(upper) * sqrt(current)) / (sqrt(upper) - sqrt(current))
- L = amount1 / (sqrt(current) - sqrt(lower))

Все sqrt цены здесь в формате Q64.96 (целые числа), как в контрактах.
Округления повторяют SqrtPriceMath / maxLiquidityForAmounts из v3-sdk,
поэтому результаты совпадают с SDK до единицы.
"""

from decimal import Decimal, getcontext
from dataclasses import dataclass

from .ticks import Q96

# Высокая точность для финансовых расчётов
getcontext().prec = 50


def to_raw_amount(amount: float | int | str | Decimal, decimals: int) -> int:
    """
    Точное преобразование человеческой суммы в raw units через Decimal.

    Args:
        amount: Сумма (например 100.5 USDC)
        decimals: Количество десятичных знаков токена (18 для DAI, 6 для USDC)

    Returns:
        Количество в smallest unit, усечённое к нулю

    Example:
        >>> to_raw_amount("100", 6)
        100000000
        >>> to_raw_amount(0.000001, 18)
        1000000000000
    """
    amount_decimal = Decimal(str(amount))
    if amount_decimal < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    multiplier = Decimal(10) ** decimals
    return int(amount_decimal * multiplier)


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) без переполнения (FullMath.mulDiv)."""
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator) (FullMath.mulDivRoundingUp)."""
    if denominator == 0:
        raise ZeroDivisionError("mul_div_rounding_up denominator is zero")
    product = a * b
    result = product // denominator
    if product % denominator:
        result += 1
    return result


def _sorted(sqrt_ratio_a: int, sqrt_ratio_b: int) -> tuple:
    if sqrt_ratio_a > sqrt_ratio_b:
        return sqrt_ratio_b, sqrt_ratio_a
    return sqrt_ratio_a, sqrt_ratio_b


@dataclass(frozen=True)
class LiquidityAmounts:
    """Результат расчёта количества токенов."""
    amount0: int  # В smallest unit
    amount1: int  # В smallest unit
    liquidity: int


def max_liquidity_for_amount0_imprecise(sqrt_ratio_a: int, sqrt_ratio_b: int, amount0: int) -> int:
    """
    Liquidity по token0, "неточный" вариант SDK.

    Промежуточное sqrtA * sqrtB / Q96 округляется вниз до умножения на
    amount0. Так считает on-chain LiquidityAmounts.getLiquidityForAmount0.
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    intermediate = (sqrt_ratio_a * sqrt_ratio_b) // Q96
    return (amount0 * intermediate) // (sqrt_ratio_b - sqrt_ratio_a)


def max_liquidity_for_amount0_precise(sqrt_ratio_a: int, sqrt_ratio_b: int, amount0: int) -> int:
    """
    Liquidity по token0 с полной точностью.

    L = amount0 * sqrtA * sqrtB / Q96 / (sqrtB - sqrtA)
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    numerator = (amount0 * sqrt_ratio_a * sqrt_ratio_b) // Q96
    denominator = sqrt_ratio_b - sqrt_ratio_a
    return numerator // denominator


def max_liquidity_for_amount1(sqrt_ratio_a: int, sqrt_ratio_b: int, amount1: int) -> int:
    """
    Liquidity по token1.

    L = amount1 * Q96 / (sqrtB - sqrtA)
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    return (amount1 * Q96) // (sqrt_ratio_b - sqrt_ratio_a)


def max_liquidity_for_amounts(
    sqrt_ratio_current: int,
    sqrt_ratio_a: int,
    sqrt_ratio_b: int,
    amount0: int,
    amount1: int,
    use_full_precision: bool = True
) -> int:
    """
    Максимальная liquidity, которую можно получить из amount0 и amount1.

    Три случая:
    1. current <= lower: позиция полностью в token0
    2. current >= upper: позиция полностью в token1
    3. lower < current < upper: минимум из двух liquidity (лимитирующий токен)

    Args:
        sqrt_ratio_current: sqrtPriceX96 пула
        sqrt_ratio_a: sqrtPriceX96 одной границы
        sqrt_ratio_b: sqrtPriceX96 другой границы
        amount0: Доступное количество token0
        amount1: Доступное количество token1
        use_full_precision: False = считать как on-chain (imprecise)

    Returns:
        Liquidity (L)
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    if sqrt_ratio_a == sqrt_ratio_b:
        raise ValueError("Tick range is empty: sqrt ratios are equal")

    if use_full_precision:
        liquidity_for_amount0 = max_liquidity_for_amount0_precise
    else:
        liquidity_for_amount0 = max_liquidity_for_amount0_imprecise

    # Случай 1: текущая цена ниже диапазона -> нужен только token0
    if sqrt_ratio_current <= sqrt_ratio_a:
        return liquidity_for_amount0(sqrt_ratio_a, sqrt_ratio_b, amount0)

    # Случай 3: текущая цена в диапазоне -> нужны оба токена
    if sqrt_ratio_current < sqrt_ratio_b:
        liquidity0 = liquidity_for_amount0(sqrt_ratio_current, sqrt_ratio_b, amount0)
        liquidity1 = max_liquidity_for_amount1(sqrt_ratio_a, sqrt_ratio_current, amount1)
        return min(liquidity0, liquidity1)

    # Случай 2: текущая цена выше диапазона -> нужен только token1
    return max_liquidity_for_amount1(sqrt_ratio_a, sqrt_ratio_b, amount1)


def get_amount0_delta(sqrt_ratio_a: int, sqrt_ratio_b: int, liquidity: int, round_up: bool) -> int:
    """
    Количество token0 между двумя ценами для liquidity.

    amount0 = L * (sqrtB - sqrtA) / (sqrtB * sqrtA), в Q96
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    if sqrt_ratio_a <= 0:
        raise ValueError("sqrt ratio must be positive")

    numerator1 = liquidity << 96
    numerator2 = sqrt_ratio_b - sqrt_ratio_a

    if round_up:
        intermediate = mul_div_rounding_up(numerator1, numerator2, sqrt_ratio_b)
        return mul_div_rounding_up(intermediate, 1, sqrt_ratio_a)
    return mul_div(numerator1, numerator2, sqrt_ratio_b) // sqrt_ratio_a


def get_amount1_delta(sqrt_ratio_a: int, sqrt_ratio_b: int, liquidity: int, round_up: bool) -> int:
    """
    Количество token1 между двумя ценами для liquidity.

    amount1 = L * (sqrtB - sqrtA) / Q96
    """
    sqrt_ratio_a, sqrt_ratio_b = _sorted(sqrt_ratio_a, sqrt_ratio_b)
    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_ratio_b - sqrt_ratio_a, Q96)
    return mul_div(liquidity, sqrt_ratio_b - sqrt_ratio_a, Q96)


def calculate_amounts(
    sqrt_ratio_current: int,
    sqrt_ratio_lower: int,
    sqrt_ratio_upper: int,
    liquidity: int,
    round_up: bool = False
) -> LiquidityAmounts:
    """
    Расчёт количества обоих токенов для заданной liquidity.

    round_up=True даёт суммы, которые контракт спишет при mint;
    round_up=False даёт стоимость позиции (как Position.amount0/amount1).
    """
    amount0 = 0
    amount1 = 0

    # Случай 1: текущая цена ниже диапазона
    if sqrt_ratio_current < sqrt_ratio_lower:
        amount0 = get_amount0_delta(sqrt_ratio_lower, sqrt_ratio_upper, liquidity, round_up)

    # Случай 3: текущая цена в диапазоне
    elif sqrt_ratio_current < sqrt_ratio_upper:
        amount0 = get_amount0_delta(sqrt_ratio_current, sqrt_ratio_upper, liquidity, round_up)
        amount1 = get_amount1_delta(sqrt_ratio_lower, sqrt_ratio_current, liquidity, round_up)

    # Случай 2: текущая цена выше диапазона
    else:
        amount1 = get_amount1_delta(sqrt_ratio_lower, sqrt_ratio_upper, liquidity, round_up)

    return LiquidityAmounts(amount0=amount0, amount1=amount1, liquidity=liquidity)
