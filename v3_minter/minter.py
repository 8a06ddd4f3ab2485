"""
Liquidity Minter

Полный сценарий создания позиции Uniswap V3:
approve(token0) -> approve(token1) -> resolve pool -> build position -> mint.
Шаги выполняются строго последовательно; ошибка любого шага прерывает
сценарий и пробрасывается вызывающему.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import List, Optional, Union
from web3 import Web3
from eth_account import Account
from eth_account.signers.local import LocalAccount

from .contracts.erc20 import TokenApprover, ApprovalResult
from .contracts.pool import PoolResolver, PoolState, POOL_INIT_CODE_HASH
from .contracts.position_manager import (
    MintExecutor,
    MintOptions,
    MintResult,
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_SLIPPAGE_BPS,
)
from .math.liquidity import LiquidityAmounts
from .math.ticks import get_tick_spacing
from .position import Position, PositionBuilder, Token, TokenAmount
from .utils import NonceManager, GasEstimator

logger = logging.getLogger(__name__)


@dataclass
class MintRequest:
    """
    Запрос на создание позиции.

    amount_a / amount_b в человеческих единицах (100.5 = 100.5 USDC),
    порядок токенов любой.
    """
    token_a: Token
    token_b: Token
    fee: int
    amount_a: Union[Decimal, str, int, float]
    amount_b: Union[Decimal, str, int, float]
    offset_spacings: int = 2
    use_full_precision: bool = True
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    deadline_seconds: int = DEFAULT_DEADLINE_SECONDS
    recipient: Optional[str] = None

    def token_amounts(self):
        return (
            TokenAmount.from_decimal(self.token_a, self.amount_a),
            TokenAmount.from_decimal(self.token_b, self.amount_b),
        )


@dataclass
class MintPreview:
    """Позиция, которая будет создана, без отправки транзакций."""
    pool: PoolState
    position: Position
    desired: LiquidityAmounts
    minimum: LiquidityAmounts


@dataclass
class MintWorkflowResult:
    """Результат полного сценария."""
    pool: PoolState
    position: Position
    mint: MintResult
    approvals: List[ApprovalResult] = field(default_factory=list)

    @property
    def tx_hashes(self) -> List[str]:
        hashes = [a.tx_hash for a in self.approvals if a.sent]
        hashes.append(self.mint.tx_hash)
        return hashes


class LiquidityMinter:
    """
    Оркестратор: ApprovalStep -> PoolResolver -> PositionBuilder -> MintExecutor.

    Example:
        minter = LiquidityMinter.from_rpc(
            rpc_url="https://...",
            private_key="0x...",
            factory_address=ETHEREUM.pool_factory,
            position_manager_address=ETHEREUM.position_manager,
        )
        result = minter.mint(MintRequest(token_a=USDC, token_b=DAI, fee=500,
                                         amount_a="100", amount_b="100"))
    """

    def __init__(
        self,
        w3: Web3,
        factory_address: str,
        position_manager_address: str,
        account: LocalAccount = None,
        init_code_hash: str = POOL_INIT_CODE_HASH,
        gas_buffer_percent: int = 20
    ):
        self.w3 = w3
        self.account = account
        self.position_manager_address = Web3.to_checksum_address(position_manager_address)

        self.gas_estimator = GasEstimator(w3, buffer_percent=gas_buffer_percent)
        self.nonce_manager = None
        if self.account:
            self.nonce_manager = NonceManager(w3, self.account.address)

        self.approver = TokenApprover(
            w3,
            self.position_manager_address,
            account=self.account,
            nonce_manager=self.nonce_manager,
            gas_estimator=self.gas_estimator
        )
        self.resolver = PoolResolver(w3, factory_address, init_code_hash=init_code_hash)
        self.executor = MintExecutor(
            w3,
            self.position_manager_address,
            account=self.account,
            nonce_manager=self.nonce_manager,
            gas_estimator=self.gas_estimator
        )

    @classmethod
    def from_rpc(
        cls,
        rpc_url: str,
        factory_address: str,
        position_manager_address: str,
        private_key: str = None,
        **kwargs
    ) -> "LiquidityMinter":
        """Создание по RPC url и (опционально) приватному ключу."""
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        account = Account.from_key(private_key) if private_key else None
        return cls(w3, factory_address, position_manager_address, account=account, **kwargs)

    @staticmethod
    def _validate(request: MintRequest):
        # ValueError для неизвестного fee tier
        get_tick_spacing(request.fee)
        if request.offset_spacings < 1:
            raise ValueError("offset_spacings must be >= 1")
        if request.token_a.address.lower() == request.token_b.address.lower():
            raise ValueError(f"Identical token addresses: {request.token_a.address}")

        amount_a, amount_b = request.token_amounts()
        # Диапазон всегда содержит текущую цену: нужны оба токена
        for amount in (amount_a, amount_b):
            if amount.quantity == 0:
                raise ValueError(f"Amount of {amount.token.symbol or amount.token.address} must be positive")
        return amount_a, amount_b

    def _resolve_and_build(self, request: MintRequest, amount_a: TokenAmount, amount_b: TokenAmount):
        pool = self.resolver.resolve(request.token_a.address, request.token_b.address, request.fee)
        builder = PositionBuilder(
            offset_spacings=request.offset_spacings,
            use_full_precision=request.use_full_precision
        )
        position = builder.build(pool, amount_a, amount_b)
        return pool, position

    def _options(self, request: MintRequest) -> MintOptions:
        recipient = request.recipient or self.account.address
        return MintOptions.create(
            recipient,
            deadline_seconds=request.deadline_seconds,
            slippage_bps=request.slippage_bps
        )

    def preview(self, request: MintRequest) -> MintPreview:
        """
        Resolve + build без транзакций (ключ не нужен).

        Returns:
            MintPreview с пулом, позицией и суммами desired / min
        """
        amount_a, amount_b = self._validate(request)
        pool, position = self._resolve_and_build(request, amount_a, amount_b)

        return MintPreview(
            pool=pool,
            position=position,
            desired=position.mint_amounts,
            minimum=position.mint_amounts_with_slippage(Fraction(request.slippage_bps, 10_000)),
        )

    def mint(self, request: MintRequest) -> MintWorkflowResult:
        """
        Полный сценарий mint.

        Raises:
            RuntimeError: Не задан аккаунт
            ValueError: Неверные параметры запроса
            TransactionRevertedError: approve или mint завершился revert
        """
        if not self.account:
            raise RuntimeError("Private key is required for mint")
        amount_a, amount_b = self._validate(request)
        if request.token_a.sorts_before(request.token_b):
            amount0, amount1 = amount_a, amount_b
        else:
            amount0, amount1 = amount_b, amount_a

        logger.info(
            f"Minting {amount0.to_decimal()} {amount0.token.symbol} + "
            f"{amount1.to_decimal()} {amount1.token.symbol}, fee={request.fee}"
        )

        # Внешние транзакции между запусками сдвигают nonce аккаунта
        self.nonce_manager.sync()

        approvals = [
            self.approver.approve(amount0.token.address, amount0.quantity),
            self.approver.approve(amount1.token.address, amount1.quantity),
        ]

        pool, position = self._resolve_and_build(request, amount_a, amount_b)
        mint_result = self.executor.execute(position, self._options(request))

        return MintWorkflowResult(
            pool=pool,
            position=position,
            mint=mint_result,
            approvals=approvals
        )
