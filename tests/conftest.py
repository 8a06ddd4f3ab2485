"""
Shared fixtures for all tests.
"""

import pytest
from unittest.mock import Mock, MagicMock

from v3_minter.contracts.pool import PoolState
from v3_minter.math.ticks import get_sqrt_ratio_at_tick, get_tick_spacing


class MockWeb3:
    """Переиспользуемый мок Web3 для тестов."""

    def __init__(self, initial_nonce: int = 100):
        self._nonce = initial_nonce
        self.eth = MagicMock()
        self.eth.get_transaction_count = MagicMock(return_value=self._nonce)
        self.eth.gas_price = 5_000_000_000  # 5 gwei
        self.eth.max_priority_fee = 1_000_000_000
        self.eth.get_block = MagicMock(return_value={'baseFeePerGas': 10_000_000_000})
        self.eth.chain_id = 1
        self.eth.estimate_gas = MagicMock(return_value=400_000)
        self.eth.send_raw_transaction = MagicMock(return_value=b'\x12\x34' * 16)
        self.eth.wait_for_transaction_receipt = MagicMock(return_value={
            'status': 1,
            'gasUsed': 300_000,
            'logs': [],
            'transactionHash': b'\x12\x34' * 16
        })
        self.eth.contract = MagicMock()

    def set_nonce(self, nonce: int):
        self._nonce = nonce
        self.eth.get_transaction_count.return_value = nonce


@pytest.fixture
def mock_w3():
    """Мок Web3 instance."""
    return MockWeb3()


@pytest.fixture
def mock_account():
    """Мок LocalAccount."""
    account = Mock()
    account.address = "0x1234567890123456789012345678901234567890"
    account.sign_transaction = Mock(return_value=Mock(raw_transaction=b'signed_tx'))
    return account


@pytest.fixture
def mock_erc20_contract():
    """Мок ERC20 контракта."""
    contract = Mock()
    contract.functions = Mock()

    # balanceOf
    contract.functions.balanceOf = Mock(return_value=Mock(
        call=Mock(return_value=1000 * 10**18)
    ))

    # decimals
    contract.functions.decimals = Mock(return_value=Mock(
        call=Mock(return_value=18)
    ))

    # allowance
    contract.functions.allowance = Mock(return_value=Mock(
        call=Mock(return_value=0)
    ))

    # approve
    contract.functions.approve = Mock(return_value=Mock(
        build_transaction=Mock(return_value={'to': '0xtoken', 'data': '0x095ea7b3'}),
        estimate_gas=Mock(return_value=50000)
    ))

    return contract


@pytest.fixture
def mock_receipt_success():
    """Успешный receipt транзакции."""
    return {
        'status': 1,
        'gasUsed': 300_000,
        'logs': [],
        'transactionHash': b'\x12\x34' * 16,
        'blockNumber': 19_000_000,
    }


@pytest.fixture
def mock_receipt_fail():
    """Неуспешный receipt транзакции."""
    return {
        'status': 0,
        'gasUsed': 300_000,
        'logs': [],
        'transactionHash': b'\xde\xad' * 16,
        'blockNumber': 19_000_000,
    }


@pytest.fixture
def make_pool():
    """
    Фабрика PoolState с согласованными tick / sqrtPriceX96.

    По умолчанию DAI/USDC 0.05% на тике 0.
    """
    def _make(
        token0="0x6B175474E89094C44Da98b954EedeAC495271d0F",
        token1="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        fee=500,
        tick=0,
        liquidity=1_000_000,
        address="0x6c6Bc977E13Df9b0de53b251522280BB72383700",
        tick_spacing=None,
    ):
        return PoolState(
            address=address,
            token0=token0,
            token1=token1,
            fee=fee,
            tick_spacing=tick_spacing or get_tick_spacing(fee),
            liquidity=liquidity,
            sqrt_price_x96=get_sqrt_ratio_at_tick(tick),
            tick=tick,
        )
    return _make
