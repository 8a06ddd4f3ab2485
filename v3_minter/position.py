"""
Liquidity Position Builder

Token / TokenAmount / Position и построение позиции по состоянию пула
и желаемым суммам токенов.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Optional
from web3 import Web3

from .contracts.pool import PoolState
from .math.ticks import (
    MIN_TICK,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MAX_SQRT_RATIO,
    encode_sqrt_ratio_x96,
    get_sqrt_ratio_at_tick,
    select_tick_range,
)
from .math.liquidity import (
    LiquidityAmounts,
    calculate_amounts,
    max_liquidity_for_amounts,
    to_raw_amount,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    """ERC20 токен."""
    chain_id: int
    address: str
    decimals: int
    symbol: str = ""

    def __post_init__(self):
        object.__setattr__(self, "address", Web3.to_checksum_address(self.address))

    def sorts_before(self, other: "Token") -> bool:
        """True если этот токен будет token0 в паре с other."""
        if self.chain_id != other.chain_id:
            raise ValueError("Tokens are on different chains")
        if self.address.lower() == other.address.lower():
            raise ValueError(f"Identical token addresses: {self.address}")
        return int(self.address, 16) < int(other.address, 16)


@dataclass(frozen=True)
class TokenAmount:
    """Количество токена в raw единицах."""
    token: Token
    quantity: int

    def __post_init__(self):
        if self.quantity < 0:
            raise ValueError(f"Token amount must be non-negative, got {self.quantity}")

    @classmethod
    def from_decimal(cls, token: Token, value) -> "TokenAmount":
        """TokenAmount из человеческой суммы (100.5 USDC -> 100500000)."""
        return cls(token=token, quantity=to_raw_amount(value, token.decimals))

    def to_decimal(self) -> Decimal:
        return Decimal(self.quantity) / (Decimal(10) ** self.token.decimals)


@dataclass(frozen=True)
class Position:
    """
    Позиция ликвидности в пуле.

    Создаётся один раз и больше не меняется. Тики должны быть кратны
    tick_spacing пула и лежать в [MIN_TICK, MAX_TICK].
    """
    pool: PoolState
    tick_lower: int
    tick_upper: int
    liquidity: int

    def __post_init__(self):
        if self.tick_lower >= self.tick_upper:
            raise ValueError(
                f"tickLower ({self.tick_lower}) >= tickUpper ({self.tick_upper}). Invalid tick range!"
            )
        if self.tick_lower < MIN_TICK or self.tick_lower % self.pool.tick_spacing != 0:
            raise ValueError(
                f"tickLower ({self.tick_lower}) not aligned to tick_spacing ({self.pool.tick_spacing})"
            )
        if self.tick_upper > MAX_TICK or self.tick_upper % self.pool.tick_spacing != 0:
            raise ValueError(
                f"tickUpper ({self.tick_upper}) not aligned to tick_spacing ({self.pool.tick_spacing})"
            )
        if self.liquidity < 0:
            raise ValueError(f"Liquidity must be non-negative, got {self.liquidity}")

    @property
    def sqrt_ratio_lower(self) -> int:
        return get_sqrt_ratio_at_tick(self.tick_lower)

    @property
    def sqrt_ratio_upper(self) -> int:
        return get_sqrt_ratio_at_tick(self.tick_upper)

    @property
    def in_range(self) -> bool:
        """Текущий тик пула внутри [tick_lower, tick_upper)."""
        return self.tick_lower <= self.pool.tick < self.tick_upper

    def _amounts(self, sqrt_price_x96: int, round_up: bool) -> LiquidityAmounts:
        return calculate_amounts(
            sqrt_price_x96,
            self.sqrt_ratio_lower,
            self.sqrt_ratio_upper,
            self.liquidity,
            round_up=round_up
        )

    @property
    def amount0(self) -> int:
        """Стоимость позиции в token0 (округление вниз)."""
        return self._amounts(self.pool.sqrt_price_x96, round_up=False).amount0

    @property
    def amount1(self) -> int:
        """Стоимость позиции в token1 (округление вниз)."""
        return self._amounts(self.pool.sqrt_price_x96, round_up=False).amount1

    @property
    def mint_amounts(self) -> LiquidityAmounts:
        """Суммы, которые контракт спишет при mint (округление вверх)."""
        return self._amounts(self.pool.sqrt_price_x96, round_up=True)

    def _ratios_after_slippage(self, slippage_tolerance: Fraction):
        """sqrtPriceX96 на нижней и верхней границе допустимого slippage."""
        price = self.pool.token0_price
        price_lower = price * (1 - slippage_tolerance)
        price_upper = price * (1 + slippage_tolerance)

        sqrt_ratio_lower = encode_sqrt_ratio_x96(price_lower.numerator, price_lower.denominator)
        if sqrt_ratio_lower <= MIN_SQRT_RATIO:
            sqrt_ratio_lower = MIN_SQRT_RATIO + 1

        sqrt_ratio_upper = encode_sqrt_ratio_x96(price_upper.numerator, price_upper.denominator)
        if sqrt_ratio_upper >= MAX_SQRT_RATIO:
            sqrt_ratio_upper = MAX_SQRT_RATIO - 1

        return sqrt_ratio_lower, sqrt_ratio_upper

    def mint_amounts_with_slippage(self, slippage_tolerance: Fraction) -> LiquidityAmounts:
        """
        Минимальные суммы для mint с учётом slippage.

        Ликвидность пересчитывается "как на чейне" (imprecise) из
        mint_amounts, затем amount0 берётся при цене +slippage, а amount1
        при цене -slippage: в этих точках позиция требует меньше всего
        соответствующего токена.
        """
        if slippage_tolerance < 0 or slippage_tolerance >= 1:
            raise ValueError(f"Slippage tolerance must be in [0, 1), got {slippage_tolerance}")

        sqrt_ratio_lower, sqrt_ratio_upper = self._ratios_after_slippage(slippage_tolerance)

        desired = self.mint_amounts
        liquidity = max_liquidity_for_amounts(
            self.pool.sqrt_price_x96,
            self.sqrt_ratio_lower,
            self.sqrt_ratio_upper,
            desired.amount0,
            desired.amount1,
            use_full_precision=False
        )

        amount0 = calculate_amounts(
            sqrt_ratio_upper, self.sqrt_ratio_lower, self.sqrt_ratio_upper, liquidity, round_up=True
        ).amount0
        amount1 = calculate_amounts(
            sqrt_ratio_lower, self.sqrt_ratio_lower, self.sqrt_ratio_upper, liquidity, round_up=True
        ).amount1

        return LiquidityAmounts(amount0=amount0, amount1=amount1, liquidity=liquidity)

    @classmethod
    def from_amounts(
        cls,
        pool: PoolState,
        tick_lower: int,
        tick_upper: int,
        amount0: int,
        amount1: int,
        use_full_precision: bool = True
    ) -> "Position":
        """
        Максимальная позиция, которую можно открыть на amount0/amount1.

        Args:
            pool: Состояние пула
            tick_lower: Нижний тик
            tick_upper: Верхний тик
            amount0: Доступно token0 (raw)
            amount1: Доступно token1 (raw)
            use_full_precision: False = округления как в on-chain LiquidityAmounts
        """
        liquidity = max_liquidity_for_amounts(
            pool.sqrt_price_x96,
            get_sqrt_ratio_at_tick(tick_lower),
            get_sqrt_ratio_at_tick(tick_upper),
            amount0,
            amount1,
            use_full_precision=use_full_precision
        )
        return cls(pool=pool, tick_lower=tick_lower, tick_upper=tick_upper, liquidity=liquidity)


class PositionBuilder:
    """
    Построение позиции вокруг текущей цены пула.

    Диапазон: текущий тик выравнивается к tick_spacing и расширяется на
    offset_spacings шагов в обе стороны.
    """

    def __init__(self, offset_spacings: int = 2, use_full_precision: bool = True):
        if offset_spacings < 1:
            raise ValueError("offset_spacings must be >= 1")
        self.offset_spacings = offset_spacings
        self.use_full_precision = use_full_precision

    def tick_range(self, pool: PoolState):
        return select_tick_range(pool.tick, pool.tick_spacing, self.offset_spacings)

    @staticmethod
    def _order_amounts(pool: PoolState, amount_a: TokenAmount, amount_b: TokenAmount):
        """(amount0, amount1) в порядке токенов пула."""
        for amount in (amount_a, amount_b):
            if not pool.involves_token(amount.token.address):
                raise ValueError(
                    f"Token {amount.token.address} is not part of pool {pool.address}"
                )
        if amount_a.token.address.lower() == amount_b.token.address.lower():
            raise ValueError("Both amounts refer to the same token")

        if amount_a.token.address.lower() == pool.token0.lower():
            return amount_a.quantity, amount_b.quantity
        return amount_b.quantity, amount_a.quantity

    def build(
        self,
        pool: PoolState,
        amount_a: TokenAmount,
        amount_b: TokenAmount,
        use_full_precision: Optional[bool] = None,
        tick_lower: Optional[int] = None,
        tick_upper: Optional[int] = None
    ) -> Position:
        """
        Построение позиции.

        Args:
            pool: Состояние пула
            amount_a: Сумма одного токена пары
            amount_b: Сумма другого токена пары (порядок не важен)
            use_full_precision: Переопределение флага точности
            tick_lower: Явный нижний тик (иначе из политики диапазона)
            tick_upper: Явный верхний тик

        Returns:
            Position
        """
        if use_full_precision is None:
            use_full_precision = self.use_full_precision

        if tick_lower is None or tick_upper is None:
            tick_lower, tick_upper = self.tick_range(pool)

        amount0, amount1 = self._order_amounts(pool, amount_a, amount_b)

        position = Position.from_amounts(
            pool=pool,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            amount0=amount0,
            amount1=amount1,
            use_full_precision=use_full_precision
        )

        logger.info(
            f"Built position: ticks [{tick_lower}, {tick_upper}], "
            f"liquidity={position.liquidity}, pool tick={pool.tick}"
        )
        return position
