"""
Uniswap V3 Pool Resolver

Вычисление адреса пула (CREATE2, без обращения к сети) и чтение
текущего состояния пула.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional, Tuple
from web3 import Web3
from eth_abi import encode

from .abis import FACTORY_ABI, POOL_ABI
from ..math.ticks import (
    MIN_TICK,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MAX_SQRT_RATIO,
    Q192,
    get_sqrt_ratio_at_tick,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# keccak256 of UniswapV3Pool creation code (одинаковый во всех сетях Uniswap V3)
POOL_INIT_CODE_HASH = "0xe34f199b19b2b4f47f68442619d555527d244f78a3297ea89325f843f87b8b54"


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """
    Сортировка токенов по адресу (token0 < token1).

    Raises:
        ValueError: Если адреса совпадают
    """
    addr_a = Web3.to_checksum_address(token_a)
    addr_b = Web3.to_checksum_address(token_b)

    if int(addr_a, 16) == int(addr_b, 16):
        raise ValueError(f"Identical token addresses: {addr_a}")

    if int(addr_a, 16) < int(addr_b, 16):
        return addr_a, addr_b
    return addr_b, addr_a


def _to_bytes(hex_value: str) -> bytes:
    if hex_value.startswith(("0x", "0X")):
        hex_value = hex_value[2:]
    return bytes.fromhex(hex_value)


def compute_pool_address(
    factory_address: str,
    token_a: str,
    token_b: str,
    fee: int,
    init_code_hash: str = POOL_INIT_CODE_HASH
) -> str:
    """
    Детерминированный адрес пула через CREATE2.

    salt = keccak256(abi.encode(token0, token1, fee))
    address = keccak256(0xff ++ factory ++ salt ++ init_code_hash)[12:]

    Порядок token_a/token_b не важен. В сеть ничего не отправляется.

    Args:
        factory_address: Адрес UniswapV3Factory
        token_a: Адрес первого токена
        token_b: Адрес второго токена
        fee: Fee tier (500, 3000, ...)
        init_code_hash: Хэш init code пула

    Returns:
        Checksum адрес пула
    """
    token0, token1 = sort_tokens(token_a, token_b)

    salt = Web3.keccak(encode(['address', 'address', 'uint24'], [token0, token1, fee]))
    factory = Web3.to_checksum_address(factory_address)

    raw = Web3.keccak(b'\xff' + _to_bytes(factory) + salt + _to_bytes(init_code_hash))
    return Web3.to_checksum_address('0x' + raw[12:].hex().removeprefix('0x'))


@dataclass(frozen=True)
class PoolState:
    """
    Снимок состояния пула на момент чтения.

    Проверяет, что tick согласован с sqrt_price_x96:
    ratio(tick) <= sqrtPriceX96 <= ratio(tick + 1).
    Верхняя граница включительно: swap zeroForOne, завершившийся ровно
    на tickNext, оставляет tick = tickNext - 1 и sqrtPriceX96 = ratio(tickNext).
    """
    address: str
    token0: str
    token1: str
    fee: int
    tick_spacing: int
    liquidity: int
    sqrt_price_x96: int
    tick: int

    def __post_init__(self):
        if self.tick_spacing <= 0:
            raise ValueError(f"tick_spacing must be positive, got {self.tick_spacing}")
        if self.tick < MIN_TICK or self.tick > MAX_TICK:
            raise ValueError(f"Tick {self.tick} out of range")
        if self.sqrt_price_x96 < MIN_SQRT_RATIO or self.sqrt_price_x96 >= MAX_SQRT_RATIO:
            raise ValueError(
                f"sqrtPriceX96 {self.sqrt_price_x96} out of range (pool not initialized?)"
            )
        lower = get_sqrt_ratio_at_tick(self.tick)
        upper = get_sqrt_ratio_at_tick(self.tick + 1) if self.tick < MAX_TICK else MAX_SQRT_RATIO
        if not (lower <= self.sqrt_price_x96 <= upper):
            raise ValueError(
                f"sqrtPriceX96 {self.sqrt_price_x96} does not match tick {self.tick}"
            )

    @property
    def token0_price(self) -> Fraction:
        """Цена token0 в token1 (raw единицы): sqrtP^2 / 2^192."""
        return Fraction(self.sqrt_price_x96 ** 2, Q192)

    @property
    def token1_price(self) -> Fraction:
        """Цена token1 в token0 (raw единицы)."""
        return Fraction(Q192, self.sqrt_price_x96 ** 2)

    def involves_token(self, token: str) -> bool:
        address = token.lower()
        return address == self.token0.lower() or address == self.token1.lower()


class PoolResolver:
    """
    Поиск пула и чтение его состояния.

    Адрес вычисляется локально (CREATE2), затем поля пула читаются
    параллельно и собираются в PoolState.
    """

    # Поля, читаемые одновременно
    STATE_FIELDS = ("token0", "token1", "fee", "tickSpacing", "liquidity", "slot0")

    def __init__(
        self,
        w3: Web3,
        factory_address: str,
        init_code_hash: str = POOL_INIT_CODE_HASH,
        max_workers: int = 6
    ):
        self.w3 = w3
        self.factory_address = Web3.to_checksum_address(factory_address)
        self.init_code_hash = init_code_hash
        self.max_workers = max_workers
        self.factory = w3.eth.contract(address=self.factory_address, abi=FACTORY_ABI)

    def compute_address(self, token_a: str, token_b: str, fee: int) -> str:
        """Адрес пула для (token_a, token_b, fee)."""
        return compute_pool_address(
            self.factory_address, token_a, token_b, fee, self.init_code_hash
        )

    def lookup_pool_address(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        """
        Адрес пула через factory.getPool (чтение из сети).

        Returns:
            Адрес пула или None если пул не существует
        """
        token0, token1 = sort_tokens(token_a, token_b)
        pool_address = self.factory.functions.getPool(token0, token1, fee).call()

        if int(pool_address, 16) == 0:
            return None
        return Web3.to_checksum_address(pool_address)

    def read_pool_state(self, pool_address: str) -> PoolState:
        """
        Параллельное чтение состояния пула.

        Ошибки чтения (пул не существует, RPC) пробрасываются как есть.
        """
        address = Web3.to_checksum_address(pool_address)
        pool = self.w3.eth.contract(address=address, abi=POOL_ABI)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                name: executor.submit(getattr(pool.functions, name)().call)
                for name in self.STATE_FIELDS
            }
            # fan-in: result() пробрасывает исключение из потока
            values = {name: future.result() for name, future in futures.items()}

        slot0 = values["slot0"]
        logger.debug(
            f"Pool {address[:10]}...: tick={slot0[1]}, sqrtPriceX96={slot0[0]}, "
            f"liquidity={values['liquidity']}"
        )

        return PoolState(
            address=address,
            token0=Web3.to_checksum_address(values["token0"]),
            token1=Web3.to_checksum_address(values["token1"]),
            fee=values["fee"],
            tick_spacing=values["tickSpacing"],
            liquidity=values["liquidity"],
            sqrt_price_x96=slot0[0],
            tick=slot0[1],
        )

    def resolve(self, token_a: str, token_b: str, fee: int) -> PoolState:
        """
        Адрес пула + его текущее состояние.

        Args:
            token_a: Адрес первого токена (порядок не важен)
            token_b: Адрес второго токена
            fee: Fee tier

        Returns:
            PoolState
        """
        pool_address = self.compute_address(token_a, token_b, fee)
        logger.info(f"Resolved pool {pool_address} for fee={fee}")
        return self.read_pool_state(pool_address)
