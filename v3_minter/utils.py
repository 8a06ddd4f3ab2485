"""
Utility classes for transaction management.

Includes:
- NonceManager: local nonce counter for sequential transactions
- GasEstimator: Smart gas estimation with fallbacks
- get_gas_params: EIP-1559 fee params with legacy fallback
- send_transaction: sign, send and wait for a receipt
"""

import logging
import threading
from typing import Optional
from web3 import Web3
from web3.exceptions import ContractLogicError
from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


class TransactionRevertedError(Exception):
    """Транзакция включена в блок, но завершилась revert (status != 1)."""

    def __init__(self, tx_hash: str, action: str = "transaction"):
        self.tx_hash = tx_hash
        self.action = action
        super().__init__(f"{action} transaction reverted! TX: {tx_hash}")


class NonceManager:
    """
    Выдача nonce для цепочки approve -> approve -> mint.

    Нода с отставанием может вернуть один и тот же pending nonce для
    транзакций, отправленных подряд, поэтому после первого чтения nonce
    считается локально. Потокобезопасен.

    Usage:
        nonces = NonceManager(w3, account_address)
        nonces.sync()                      # начало сценария
        nonce = nonces.get_next_nonce()
        # транзакция не ушла в сеть:
        nonces.release_nonce(nonce)
    """

    def __init__(self, w3: Web3, account_address: str):
        self.w3 = w3
        self.account_address = Web3.to_checksum_address(account_address)
        self._lock = threading.Lock()
        self._next_nonce: Optional[int] = None

    def _read_pending(self) -> int:
        return self.w3.eth.get_transaction_count(self.account_address, 'pending')

    def sync(self) -> int:
        """
        Перечитать pending nonce с ноды.

        Локальный счётчик только растёт: внешние транзакции сдвигают его
        вперёд, отставшая нода назад не откатывает.
        """
        with self._lock:
            on_chain = self._read_pending()
            if self._next_nonce is None or on_chain > self._next_nonce:
                self._next_nonce = on_chain
            logger.debug(f"Nonce synced for {self.account_address[:10]}...: {self._next_nonce}")
            return self._next_nonce

    def get_next_nonce(self) -> int:
        with self._lock:
            if self._next_nonce is None:
                self._next_nonce = self._read_pending()
            nonce = self._next_nonce
            self._next_nonce += 1
            return nonce

    def release_nonce(self, nonce: int):
        """Вернуть nonce, транзакция по которому так и не была отправлена."""
        with self._lock:
            # Откат только для последнего выданного, иначе появится дыра
            if self._next_nonce is not None and nonce == self._next_nonce - 1:
                self._next_nonce = nonce
            logger.debug(f"Released nonce {nonce}, next: {self._next_nonce}")


class GasEstimator:
    """
    Smart gas estimation with fallbacks.

    Tries to estimate gas, falls back to safe defaults if estimation fails.
    Applies a configurable buffer for safety.

    Usage:
        estimator = GasEstimator(w3, buffer_percent=20)
        gas_limit = estimator.estimate(contract.functions.approve(...), from_address)
    """

    # Default gas limits by operation type
    DEFAULTS = {
        'approve': 60000,
        'mint_position': 500000,
        'increase_liquidity': 400000,
    }

    def __init__(self, w3: Web3, buffer_percent: int = 20):
        """
        Args:
            w3: Web3 instance
            buffer_percent: Percentage buffer to add to estimated gas
        """
        self.w3 = w3
        self.buffer_percent = buffer_percent

    def _apply_buffer(self, estimated: int, max_gas: int) -> int:
        with_buffer = int(estimated * (1 + self.buffer_percent / 100))
        result = min(with_buffer, max_gas)
        logger.debug(f"Gas estimated: {estimated}, with buffer: {result}")
        return result

    def estimate(
        self,
        contract_function,
        from_address: str,
        value: int = 0,
        default_type: str = 'approve',
        max_gas: int = 3000000
    ) -> int:
        """
        Estimate gas for a contract function call.

        Args:
            contract_function: Web3 contract function (e.g., contract.functions.approve(...))
            from_address: Transaction sender address
            value: ETH value to send (default 0)
            default_type: Type of operation for fallback default
            max_gas: Maximum gas to return

        Returns:
            Estimated gas with buffer applied
        """
        try:
            estimated = contract_function.estimate_gas({
                'from': Web3.to_checksum_address(from_address),
                'value': value
            })
            return self._apply_buffer(estimated, max_gas)

        except ContractLogicError as e:
            logger.warning(f"Gas estimation failed (contract error): {e}")
            return self.DEFAULTS.get(default_type, 200000)

        except Exception as e:
            logger.warning(f"Gas estimation failed: {e}, using default for '{default_type}'")
            return self.DEFAULTS.get(default_type, 200000)

    def estimate_raw(
        self,
        tx: dict,
        default_type: str = 'mint_position',
        max_gas: int = 3000000
    ) -> int:
        """
        Estimate gas for a raw transaction dict ({from, to, data, value}).

        Used for calldata built without a contract function object.
        """
        try:
            estimated = self.w3.eth.estimate_gas(tx)
            return self._apply_buffer(estimated, max_gas)
        except Exception as e:
            logger.warning(f"Gas estimation failed: {e}, using default for '{default_type}'")
            return self.DEFAULTS.get(default_type, 200000)


def get_gas_params(w3: Web3, max_fee_per_gas: int = None, max_priority_fee_per_gas: int = None) -> dict:
    """
    Получение параметров газа: EIP-1559 если поддерживается, иначе legacy.

    Явно переданные max_fee_per_gas / max_priority_fee_per_gas имеют приоритет
    над значениями с ноды.
    """
    if max_fee_per_gas is not None and max_priority_fee_per_gas is not None:
        return {
            'maxFeePerGas': max_fee_per_gas,
            'maxPriorityFeePerGas': max_priority_fee_per_gas,
        }
    try:
        priority_fee = max_priority_fee_per_gas or w3.eth.max_priority_fee
        base_fee = w3.eth.get_block('latest')['baseFeePerGas']
        return {
            'maxPriorityFeePerGas': priority_fee,
            'maxFeePerGas': max_fee_per_gas or base_fee * 2 + priority_fee,
        }
    except Exception:
        return {'gasPrice': w3.eth.gas_price}


def send_transaction(
    w3: Web3,
    account: LocalAccount,
    tx: dict,
    nonce: int,
    nonce_manager: NonceManager = None,
    timeout: int = 120,
    action: str = "transaction"
):
    """
    Подписать, отправить и дождаться receipt.

    Nonce bookkeeping: если транзакция ушла в сеть, nonce считается
    использованным (даже при revert), иначе освобождается.

    Returns:
        (tx_hash_hex, receipt)

    Raises:
        TransactionRevertedError: receipt.status != 1
    """
    try:
        signed = account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    except Exception:
        # Транзакция не ушла в сеть: nonce можно выдать повторно
        if nonce_manager:
            nonce_manager.release_nonce(nonce)
        raise

    tx_hash_hex = Web3.to_hex(tx_hash)
    logger.info(f"{action} sent: {tx_hash_hex}")

    # Отправленная транзакция расходует nonce даже при revert или таймауте
    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)

    if receipt["status"] != 1:
        raise TransactionRevertedError(tx_hash_hex, action)

    return tx_hash_hex, receipt
