"""
Uniswap V3 Tick Mathematics

Основные формулы:
- price(i) = 1.0001^i
- sqrtPriceX96 = sqrt(price) * 2^96

get_sqrt_ratio_at_tick повторяет TickMath.getSqrtRatioAtTick из v3-core
бит в бит (целочисленная арифметика, без float).

Tick spacing по fee tier:
- 0.01% (100) -> spacing 1
- 0.05% (500) -> spacing 10
- 0.30% (3000) -> spacing 60
- 1.00% (10000) -> spacing 200
"""

import math
from typing import Tuple

# Константы
Q32 = 2 ** 32
Q96 = 2 ** 96
Q192 = 2 ** 192
MAX_UINT256 = 2 ** 256 - 1
MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# Fee tier -> tick spacing
FEE_TO_TICK_SPACING = {
    100: 1,      # 0.01%
    500: 10,     # 0.05%
    3000: 60,    # 0.30%
    10000: 200,  # 1.00%
}

# (bit, multiplier) for getSqrtRatioAtTick, Q128.128
_TICK_MULTIPLIERS = (
    (0x2, 0xfff97272373d413259a46990580e213a),
    (0x4, 0xfff2e50f5f656932ef12357cf3c7fdcc),
    (0x8, 0xffe5caca7e10e4e61c3624eaa0941cd0),
    (0x10, 0xffcb9843d60f6159c9db58835c926644),
    (0x20, 0xff973b41fa98c081472e6896dfb254c0),
    (0x40, 0xff2ea16466c96a3843ec78b326b52861),
    (0x80, 0xfe5dee046a99a2a811c461f1969c3053),
    (0x100, 0xfcbe86c7900a88aedcffc83b479aa3a4),
    (0x200, 0xf987a7253ac413176f2b074cf7815e54),
    (0x400, 0xf3392b0822b70005940c7a398e4b70f3),
    (0x800, 0xe7159475a2c29b7443b29c7fa6e889d9),
    (0x1000, 0xd097f3bdfd2022b8845ad8f792aa5825),
    (0x2000, 0xa9f746462d870fdf8a65dc1f90e061e5),
    (0x4000, 0x70d869a156d2a1b890bb3df62baf32f7),
    (0x8000, 0x31be135f97d08fd981231505542fcfa6),
    (0x10000, 0x9aa508b5b7a84e1c677de54f3e99bc9),
    (0x20000, 0x5d6af8dedb81196699c329225ee604),
    (0x40000, 0x2216e584f5fa1ea926041bedfe98),
    (0x80000, 0x48a170391f7dc42444e8fa2),
)


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    Конвертация тика в sqrtPriceX96 (точная, как в TickMath).

    sqrt(1.0001^tick) * 2^96, округление вверх при переводе из Q128.128.

    Args:
        tick: Номер тика в диапазоне [MIN_TICK, MAX_TICK]

    Returns:
        sqrtPriceX96

    Raises:
        ValueError: Если тик вне диапазона
    """
    if not isinstance(tick, int) or tick < MIN_TICK or tick > MAX_TICK:
        raise ValueError(f"Tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]")

    abs_tick = -tick if tick < 0 else tick

    if abs_tick & 0x1:
        ratio = 0xfffcb933bd6fad37aa2d162d1a594001
    else:
        ratio = 0x100000000000000000000000000000000

    for bit, multiplier in _TICK_MULTIPLIERS:
        if abs_tick & bit:
            ratio = (ratio * multiplier) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 -> Q64.96, round up
    if ratio % Q32 > 0:
        return ratio // Q32 + 1
    return ratio // Q32


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """
    Наибольший тик, для которого get_sqrt_ratio_at_tick(tick) <= sqrt_price_x96.

    Бинарный поиск по точной get_sqrt_ratio_at_tick, поэтому результат
    совпадает с TickMath.getTickAtSqrtRatio.
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise ValueError(f"sqrtPriceX96 {sqrt_price_x96} out of range")

    low, high = MIN_TICK, MAX_TICK
    while high - low > 1:
        mid = (low + high) // 2
        if get_sqrt_ratio_at_tick(mid) <= sqrt_price_x96:
            low = mid
        else:
            high = mid

    return low


def encode_sqrt_ratio_x96(amount1: int, amount0: int) -> int:
    """
    sqrtPriceX96 для цены amount1/amount0.

    sqrt((amount1 << 192) / amount0), целочисленный корень.
    """
    if amount0 <= 0 or amount1 < 0:
        raise ValueError("amount0 must be positive and amount1 non-negative")
    return math.isqrt((amount1 << 192) // amount0)


def tick_to_price(tick: int) -> float:
    """Конвертация тика в цену token1/token0 (raw единицы)."""
    return 1.0001 ** tick


def get_tick_spacing(fee: int) -> int:
    """
    Получение tick_spacing по fee tier.

    Args:
        fee: Fee в сотых долях bip (500 = 0.05%, 3000 = 0.3%)

    Returns:
        tick_spacing

    Raises:
        ValueError: Если fee не является стандартным V3 tier
    """
    if fee in FEE_TO_TICK_SPACING:
        return FEE_TO_TICK_SPACING[fee]

    valid_fees = sorted(FEE_TO_TICK_SPACING.keys())
    raise ValueError(f"Unknown fee tier: {fee}. Valid V3 fee tiers are: {valid_fees}")


def nearest_usable_tick(tick: int, tick_spacing: int) -> int:
    """
    Ближайший тик, кратный tick_spacing.

    Округление как Math.round в SDK (половина округляется к +∞),
    результат не выходит за [MIN_TICK, MAX_TICK].

    Args:
        tick: Исходный тик
        tick_spacing: Шаг тиков

    Returns:
        Выровненный тик
    """
    if tick_spacing <= 0:
        raise ValueError("tick_spacing must be positive")
    if tick < MIN_TICK or tick > MAX_TICK:
        raise ValueError(f"Tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]")

    # floor(tick / spacing + 1/2) без float
    rounded = ((2 * tick + tick_spacing) // (2 * tick_spacing)) * tick_spacing

    if rounded < MIN_TICK:
        return rounded + tick_spacing
    if rounded > MAX_TICK:
        return rounded - tick_spacing
    return rounded


def select_tick_range(
    current_tick: int,
    tick_spacing: int,
    offset_spacings: int = 2
) -> Tuple[int, int]:
    """
    Диапазон тиков вокруг текущей цены.

    Текущий тик выравнивается к ближайшему usable тику, затем границы
    сдвигаются на offset_spacings шагов в каждую сторону. Позиция
    сразу оказывается "в диапазоне" и начинает получать fees.

    Args:
        current_tick: Текущий тик пула (slot0.tick)
        tick_spacing: Шаг тиков пула
        offset_spacings: На сколько шагов отступить от центра

    Returns:
        (tick_lower, tick_upper)

    Example:
        select_tick_range(0, 10)  # (-20, 20)
    """
    if offset_spacings < 1:
        raise ValueError("offset_spacings must be >= 1")

    center = nearest_usable_tick(current_tick, tick_spacing)
    tick_lower = center - offset_spacings * tick_spacing
    tick_upper = center + offset_spacings * tick_spacing

    if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
        raise ValueError(
            f"Tick range [{tick_lower}, {tick_upper}] exceeds [{MIN_TICK}, {MAX_TICK}]"
        )

    return tick_lower, tick_upper


def get_price_range_for_tick_range(tick_lower: int, tick_upper: int) -> Tuple[float, float]:
    """
    Получение диапазона цен для диапазона тиков.

    Returns:
        (price_lower, price_upper)
    """
    return tick_to_price(tick_lower), tick_to_price(tick_upper)
