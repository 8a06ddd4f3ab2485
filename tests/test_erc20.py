"""
Tests for TokenApprover (approve перед mint).
"""

import pytest
from unittest.mock import Mock

from v3_minter.contracts.erc20 import TokenApprover, ApprovalResult
from v3_minter.utils import NonceManager, TransactionRevertedError


POSITION_MANAGER = "0xC36442b4a4522E871399CD717aBDD847Ab11FE88"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
OTHER_SPENDER = "0x9999999999999999999999999999999999999999"


@pytest.fixture
def approver(mock_w3, mock_account, mock_erc20_contract):
    mock_w3.eth.contract.return_value = mock_erc20_contract
    nonce_manager = NonceManager(mock_w3, mock_account.address)
    return TokenApprover(mock_w3, POSITION_MANAGER, mock_account, nonce_manager)


class TestApprove:

    def test_already_approved(self, approver, mock_erc20_contract, mock_w3):
        """Allowance достаточно: транзакция не отправляется."""
        mock_erc20_contract.functions.allowance.return_value.call.return_value = 10 ** 9

        result = approver.approve(USDC, 10 ** 8)

        assert result == ApprovalResult(token=USDC, spender=POSITION_MANAGER, amount=10 ** 8, tx_hash=None)
        assert not result.sent
        mock_w3.eth.send_raw_transaction.assert_not_called()
        mock_erc20_contract.functions.approve.assert_not_called()

    def test_exact_allowance_is_enough(self, approver, mock_erc20_contract, mock_w3):
        mock_erc20_contract.functions.allowance.return_value.call.return_value = 500

        assert not approver.approve(USDC, 500).sent
        mock_w3.eth.send_raw_transaction.assert_not_called()

    def test_sends_exact_amount(self, approver, mock_erc20_contract, mock_w3):
        """Approve на требуемую сумму, не на max uint256."""
        result = approver.approve(USDC, 123_456)

        assert result.sent
        assert result.tx_hash == '0x' + '1234' * 16
        mock_erc20_contract.functions.approve.assert_called_once_with(POSITION_MANAGER, 123_456)
        mock_w3.eth.send_raw_transaction.assert_called_once_with(b'signed_tx')

    def test_allowance_checked_for_owner_and_spender(self, approver, mock_erc20_contract, mock_account):
        approver.approve(USDC, 1)

        mock_erc20_contract.functions.allowance.assert_called_once_with(
            mock_account.address, POSITION_MANAGER
        )

    def test_tx_params(self, approver, mock_erc20_contract):
        approver.approve(USDC, 1)

        tx_params = mock_erc20_contract.functions.approve.return_value.build_transaction.call_args[0][0]
        assert tx_params['nonce'] == 100
        assert tx_params['gas'] == 60000  # 50000 estimate + 20%
        assert tx_params['maxFeePerGas'] == 21_000_000_000
        assert tx_params['maxPriorityFeePerGas'] == 1_000_000_000

    def test_custom_spender(self, approver, mock_erc20_contract):
        result = approver.approve(USDC, 1, spender=OTHER_SPENDER)

        assert result.spender == OTHER_SPENDER
        mock_erc20_contract.functions.approve.assert_called_once_with(OTHER_SPENDER, 1)

    def test_reverted(self, approver, mock_w3, mock_receipt_fail):
        mock_w3.eth.wait_for_transaction_receipt.return_value = mock_receipt_fail

        with pytest.raises(TransactionRevertedError, match="approve transaction reverted"):
            approver.approve(USDC, 1)

        # транзакция ушла в сеть: nonce израсходован
        assert approver.nonce_manager.get_next_nonce() == 101

    def test_build_failure_releases_nonce(self, approver, mock_erc20_contract):
        mock_erc20_contract.functions.approve.return_value.build_transaction.side_effect = \
            ValueError("bad params")

        with pytest.raises(ValueError, match="bad params"):
            approver.approve(USDC, 1)

        assert approver.nonce_manager.get_next_nonce() == 100

    def test_no_account(self, mock_w3):
        approver = TokenApprover(mock_w3, POSITION_MANAGER)

        with pytest.raises(RuntimeError, match="Account not configured"):
            approver.approve(USDC, 1)

    def test_negative_amount(self, approver):
        with pytest.raises(ValueError, match="non-negative"):
            approver.approve(USDC, -1)


class TestReads:

    def test_balance_of(self, approver, mock_erc20_contract, mock_account):
        assert approver.balance_of(USDC) == 1000 * 10 ** 18
        mock_erc20_contract.functions.balanceOf.assert_called_once_with(mock_account.address)

    def test_allowance(self, approver, mock_erc20_contract):
        mock_erc20_contract.functions.allowance.return_value.call.return_value = 42
        assert approver.allowance(USDC) == 42
