from .ticks import (
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
    get_tick_spacing,
    nearest_usable_tick,
    select_tick_range,
)
from .liquidity import max_liquidity_for_amounts, calculate_amounts, to_raw_amount
