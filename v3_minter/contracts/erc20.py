"""
ERC20 Approval Step

Выдача allowance для NonfungiblePositionManager перед mint.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from web3 import Web3
from web3.contract import Contract
from eth_account.signers.local import LocalAccount

from .abis import ERC20_ABI
from ..utils import NonceManager, GasEstimator, get_gas_params, send_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalResult:
    """Результат approve."""
    token: str
    spender: str
    amount: int
    tx_hash: Optional[str]  # None если allowance уже было достаточно

    @property
    def sent(self) -> bool:
        return self.tx_hash is not None


class TokenApprover:
    """
    Approve ERC20 токенов для spender (обычно position manager).

    Approve выдаётся ровно на требуемую сумму, а не на max uint256.
    """

    def __init__(
        self,
        w3: Web3,
        spender: str,
        account: LocalAccount = None,
        nonce_manager: NonceManager = None,
        gas_estimator: GasEstimator = None
    ):
        self.w3 = w3
        self.spender = Web3.to_checksum_address(spender)
        self.account = account
        self.nonce_manager = nonce_manager
        self.gas_estimator = gas_estimator or GasEstimator(w3)

    def _get_token_contract(self, token_address: str) -> Contract:
        """Получение контракта ERC20."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI
        )

    def allowance(self, token_address: str, owner: str = None, spender: str = None) -> int:
        """Текущий allowance owner -> spender."""
        owner = owner or self.account.address
        spender = spender or self.spender
        token = self._get_token_contract(token_address)
        return token.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender)
        ).call()

    def balance_of(self, token_address: str, owner: str = None) -> int:
        """Баланс токена."""
        owner = owner or self.account.address
        token = self._get_token_contract(token_address)
        return token.functions.balanceOf(Web3.to_checksum_address(owner)).call()

    def approve(
        self,
        token_address: str,
        amount: int,
        spender: str = None,
        timeout: int = 120
    ) -> ApprovalResult:
        """
        Approve токена на amount.

        Args:
            token_address: Адрес токена
            amount: Потолок суммы, которую spender может списать
            spender: Адрес spender (по умолчанию position manager)
            timeout: Таймаут ожидания receipt в секундах

        Returns:
            ApprovalResult; tx_hash=None если allowance уже достаточно

        Raises:
            TransactionRevertedError: approve завершился revert
        """
        if not self.account:
            raise RuntimeError("Account not configured")
        if amount < 0:
            raise ValueError(f"Approval amount must be non-negative, got {amount}")

        token_address = Web3.to_checksum_address(token_address)
        spender = Web3.to_checksum_address(spender or self.spender)

        current_allowance = self.allowance(token_address, spender=spender)
        if current_allowance >= amount:
            logger.info(f"Token {token_address[:10]}... already approved ({current_allowance} >= {amount})")
            return ApprovalResult(token=token_address, spender=spender, amount=amount, tx_hash=None)

        logger.info(f"Approving {amount} of {token_address[:10]}... for {spender[:10]}...")

        token = self._get_token_contract(token_address)
        approve_fn = token.functions.approve(spender, amount)

        gas_limit = self.gas_estimator.estimate(
            approve_fn,
            self.account.address,
            default_type='approve'
        )

        nonce = self.nonce_manager.get_next_nonce() if self.nonce_manager else \
                self.w3.eth.get_transaction_count(self.account.address, 'pending')

        try:
            tx_params = {
                'from': self.account.address,
                'nonce': nonce,
                'gas': gas_limit,
            }
            tx_params.update(get_gas_params(self.w3))
            tx = approve_fn.build_transaction(tx_params)
        except Exception:
            if self.nonce_manager:
                self.nonce_manager.release_nonce(nonce)
            raise

        tx_hash, _ = send_transaction(
            self.w3,
            self.account,
            tx,
            nonce,
            nonce_manager=self.nonce_manager,
            timeout=timeout,
            action="approve"
        )

        logger.info(f"Approved! TX: {tx_hash}")
        return ApprovalResult(token=token_address, spender=spender, amount=amount, tx_hash=tx_hash)
