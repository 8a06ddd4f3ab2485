"""
Uniswap V3 Position Manager Integration

Кодирование вызовов NonfungiblePositionManager (mint / increaseLiquidity /
refundETH / multicall) и отправка mint транзакции.
"""

import logging
import time
from dataclasses import dataclass
from fractions import Fraction
from typing import List, Optional
from web3 import Web3
from web3.logs import DISCARD
from eth_account.signers.local import LocalAccount

from .abis import POSITION_MANAGER_ABI
from ..position import Position
from ..utils import NonceManager, GasEstimator, get_gas_params, send_transaction

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_DEADLINE_SECONDS = 1200
DEFAULT_SLIPPAGE_BPS = 50

# Контракт без адреса: только для кодирования calldata, в сеть не ходит
_INTERFACE = Web3().eth.contract(abi=POSITION_MANAGER_ABI)


@dataclass(frozen=True)
class MintOptions:
    """
    Опции mint.

    token_id: если задан, вместо mint кодируется increaseLiquidity.
    use_native: адрес wrapped-native токена пула; его часть оплачивается
    нативной монетой (msg.value), в конец добавляется refundETH.
    """
    recipient: str
    deadline: int
    slippage_tolerance: Fraction
    token_id: Optional[int] = None
    use_native: Optional[str] = None

    def __post_init__(self):
        if self.slippage_tolerance < 0 or self.slippage_tolerance >= 1:
            raise ValueError(f"Slippage tolerance must be in [0, 1), got {self.slippage_tolerance}")

    @classmethod
    def create(
        cls,
        recipient: str,
        now: int = None,
        deadline_seconds: int = DEFAULT_DEADLINE_SECONDS,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        token_id: int = None,
        use_native: str = None
    ) -> "MintOptions":
        """
        MintOptions с deadline = now + deadline_seconds и slippage в basis points.

        Args:
            recipient: Получатель NFT позиции
            now: Текущее unix время (по умолчанию time.time())
            deadline_seconds: Запас до deadline (20 минут)
            slippage_bps: Допустимый slippage (50 = 0.5%)
        """
        if now is None:
            now = int(time.time())
        return cls(
            recipient=Web3.to_checksum_address(recipient),
            deadline=now + deadline_seconds,
            slippage_tolerance=Fraction(slippage_bps, 10_000),
            token_id=token_id,
            use_native=Web3.to_checksum_address(use_native) if use_native else None,
        )


@dataclass(frozen=True)
class MethodParameters:
    """Calldata и msg.value для вызова position manager."""
    calldata: bytes
    value: int

    @property
    def calldata_hex(self) -> str:
        return '0x' + self.calldata.hex()


@dataclass(frozen=True)
class MintResult:
    """Результат создания позиции."""
    token_id: int
    liquidity: int
    amount0: int
    amount1: int
    tx_hash: str
    gas_used: int = 0


def _encode(fn_name: str, args: list) -> bytes:
    return Web3.to_bytes(hexstr=_INTERFACE.encode_abi(fn_name, args=args))


def encode_multicall(calldatas: List[bytes]) -> bytes:
    """Одиночный вызов как есть, несколько: multicall(bytes[])."""
    if len(calldatas) == 1:
        return calldatas[0]
    return _encode('multicall', [calldatas])


def add_call_parameters(position: Position, options: MintOptions) -> MethodParameters:
    """
    Calldata для добавления ликвидности в позицию.

    amount*Desired = mint_amounts позиции (округление вверх),
    amount*Min = mint_amounts_with_slippage.

    Raises:
        ValueError: Нулевая ликвидность или use_native не из пула
    """
    if position.liquidity <= 0:
        raise ValueError("ZERO_LIQUIDITY: position has no liquidity to mint")

    pool = position.pool
    desired = position.mint_amounts
    minimum = position.mint_amounts_with_slippage(options.slippage_tolerance)

    calldatas: List[bytes] = []

    if options.token_id is None:
        params = (
            Web3.to_checksum_address(pool.token0),
            Web3.to_checksum_address(pool.token1),
            pool.fee,
            position.tick_lower,
            position.tick_upper,
            desired.amount0,
            desired.amount1,
            minimum.amount0,
            minimum.amount1,
            Web3.to_checksum_address(options.recipient),
            options.deadline
        )
        calldatas.append(_encode('mint', [params]))
    else:
        params = (
            options.token_id,
            desired.amount0,
            desired.amount1,
            minimum.amount0,
            minimum.amount1,
            options.deadline
        )
        calldatas.append(_encode('increaseLiquidity', [params]))

    value = 0
    if options.use_native:
        native = options.use_native.lower()
        if native == pool.token0.lower():
            value = desired.amount0
        elif native == pool.token1.lower():
            value = desired.amount1
        else:
            raise ValueError(f"NO_WETH: {options.use_native} is not a token of pool {pool.address}")

        if value > 0:
            calldatas.append(_encode('refundETH', []))

    return MethodParameters(calldata=encode_multicall(calldatas), value=value)


class MintExecutor:
    """
    Отправка mint / increaseLiquidity в NonfungiblePositionManager.
    """

    def __init__(
        self,
        w3: Web3,
        position_manager_address: str,
        account: LocalAccount = None,
        nonce_manager: NonceManager = None,
        gas_estimator: GasEstimator = None
    ):
        self.w3 = w3
        self.account = account
        self.nonce_manager = nonce_manager
        self.gas_estimator = gas_estimator or GasEstimator(w3)
        self.position_manager_address = Web3.to_checksum_address(position_manager_address)
        self.contract = w3.eth.contract(
            address=self.position_manager_address,
            abi=POSITION_MANAGER_ABI
        )

    def _parse_mint_events(self, receipt, token_id: int = None) -> Optional[dict]:
        """
        Парсинг IncreaseLiquidity из receipt, fallback: Transfer от address(0).

        Returns:
            dict с token_id, liquidity, amount0, amount1 или None
        """
        events = self.contract.events.IncreaseLiquidity().process_receipt(receipt, errors=DISCARD)
        for event in events:
            if token_id is not None and event['args']['tokenId'] != token_id:
                continue
            return {
                'token_id': event['args']['tokenId'],
                'liquidity': event['args']['liquidity'],
                'amount0': event['args']['amount0'],
                'amount1': event['args']['amount1']
            }

        # Transfer при mint идёт от address(0) к recipient
        events = self.contract.events.Transfer().process_receipt(receipt, errors=DISCARD)
        for event in events:
            if int(event['args']['from'], 16) == 0:
                return {
                    'token_id': event['args']['tokenId'],
                    'liquidity': 0,
                    'amount0': 0,
                    'amount1': 0
                }

        return None

    def execute(self, position: Position, options: MintOptions, timeout: int = 300) -> MintResult:
        """
        Mint позиции.

        Args:
            position: Позиция (пул, тики, ликвидность)
            options: Получатель, deadline, slippage
            timeout: Таймаут ожидания подтверждения в секундах

        Returns:
            MintResult

        Raises:
            TransactionRevertedError: mint завершился revert
        """
        if not self.account:
            raise RuntimeError("Account not configured")

        call = add_call_parameters(position, options)
        action = "mint" if options.token_id is None else "increaseLiquidity"
        default_type = 'mint_position' if options.token_id is None else 'increase_liquidity'

        logger.info(
            f"{action}: ticks [{position.tick_lower}, {position.tick_upper}], "
            f"liquidity={position.liquidity}, value={call.value}"
        )

        tx = {
            'from': self.account.address,
            'to': self.position_manager_address,
            'data': call.calldata_hex,
            'value': call.value,
        }
        gas_limit = self.gas_estimator.estimate_raw(dict(tx), default_type=default_type)

        nonce = self.nonce_manager.get_next_nonce() if self.nonce_manager else \
                self.w3.eth.get_transaction_count(self.account.address, 'pending')

        try:
            tx.update({
                'nonce': nonce,
                'gas': gas_limit,
                'chainId': self.w3.eth.chain_id,
            })
            tx.update(get_gas_params(self.w3))
        except Exception:
            if self.nonce_manager:
                self.nonce_manager.release_nonce(nonce)
            raise

        tx_hash, receipt = send_transaction(
            self.w3,
            self.account,
            tx,
            nonce,
            nonce_manager=self.nonce_manager,
            timeout=timeout,
            action=action
        )

        event_data = self._parse_mint_events(receipt, options.token_id)
        if event_data is None:
            logger.warning(f"No mint events found in receipt {tx_hash}")
            event_data = {
                'token_id': options.token_id or 0,
                'liquidity': 0,
                'amount0': 0,
                'amount1': 0
            }

        result = MintResult(
            token_id=event_data['token_id'],
            liquidity=event_data['liquidity'],
            amount0=event_data['amount0'],
            amount1=event_data['amount1'],
            tx_hash=tx_hash,
            gas_used=receipt.get('gasUsed', 0)
        )
        logger.info(f"Minted position #{result.token_id}, liquidity={result.liquidity}, TX: {tx_hash}")
        return result
