"""
Tests for NonfungiblePositionManager calldata and MintExecutor.
"""

import pytest
from fractions import Fraction
from unittest.mock import Mock
from eth_abi import decode
from web3 import Web3

from v3_minter.contracts.position_manager import (
    MintExecutor,
    MintOptions,
    MintResult,
    MethodParameters,
    add_call_parameters,
    encode_multicall,
)
from v3_minter.position import Position
from v3_minter.utils import NonceManager, TransactionRevertedError


POSITION_MANAGER = "0xC36442b4a4522E871399CD717aBDD847Ab11FE88"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
RECIPIENT = "0x1234567890123456789012345678901234567890"

MINT_PARAMS_TYPE = '(address,address,uint24,int24,int24,uint256,uint256,uint256,uint256,address,uint256)'
INCREASE_PARAMS_TYPE = '(uint256,uint256,uint256,uint256,uint256,uint256)'

E18 = 10 ** 18
NOW = 1_700_000_000


def selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


MINT_SELECTOR = selector(f"mint({MINT_PARAMS_TYPE})")
INCREASE_SELECTOR = selector(f"increaseLiquidity({INCREASE_PARAMS_TYPE})")
MULTICALL_SELECTOR = selector("multicall(bytes[])")
REFUND_ETH_SELECTOR = selector("refundETH()")


@pytest.fixture
def position(make_pool):
    return Position.from_amounts(make_pool(tick=0), -200, 200, 100 * E18, 100 * E18)


@pytest.fixture
def options():
    return MintOptions.create(RECIPIENT, now=NOW)


# ============================================================
# MintOptions
# ============================================================

class TestMintOptions:

    def test_defaults(self):
        """deadline = now + 20 минут, slippage 0.5%."""
        opts = MintOptions.create(RECIPIENT, now=NOW)

        assert opts.deadline == NOW + 1200
        assert opts.slippage_tolerance == Fraction(50, 10_000)
        assert opts.token_id is None
        assert opts.use_native is None

    def test_custom_values(self):
        opts = MintOptions.create(RECIPIENT.lower(), now=NOW, deadline_seconds=60, slippage_bps=100)

        assert opts.deadline == NOW + 60
        assert opts.slippage_tolerance == Fraction(1, 100)
        assert opts.recipient == Web3.to_checksum_address(RECIPIENT)

    def test_uses_current_time(self, monkeypatch):
        monkeypatch.setattr("v3_minter.contracts.position_manager.time.time", lambda: 1000.7)

        assert MintOptions.create(RECIPIENT).deadline == 2200

    def test_invalid_slippage(self):
        with pytest.raises(ValueError, match="Slippage"):
            MintOptions(recipient=RECIPIENT, deadline=NOW, slippage_tolerance=Fraction(1))


# ============================================================
# add_call_parameters
# ============================================================

class TestAddCallParameters:

    def test_mint_calldata(self, position, options):
        params = add_call_parameters(position, options)

        assert isinstance(params, MethodParameters)
        assert params.value == 0
        assert params.calldata[:4] == MINT_SELECTOR

        (decoded,) = decode([MINT_PARAMS_TYPE], params.calldata[4:])
        desired = position.mint_amounts
        minimum = position.mint_amounts_with_slippage(options.slippage_tolerance)

        assert decoded[0].lower() == DAI.lower()
        assert decoded[1].lower() == USDC.lower()
        assert decoded[2] == 500
        assert decoded[3] == -200
        assert decoded[4] == 200
        assert decoded[5] == desired.amount0
        assert decoded[6] == desired.amount1
        assert decoded[7] == minimum.amount0
        assert decoded[8] == minimum.amount1
        assert decoded[9].lower() == RECIPIENT.lower()
        assert decoded[10] == NOW + 1200

    def test_minimums_below_desired(self, position, options):
        params = add_call_parameters(position, options)
        (decoded,) = decode([MINT_PARAMS_TYPE], params.calldata[4:])

        assert 0 < decoded[7] < decoded[5]
        assert 0 < decoded[8] < decoded[6]

    def test_increase_liquidity(self, position):
        opts = MintOptions.create(RECIPIENT, now=NOW, token_id=42)

        params = add_call_parameters(position, opts)

        assert params.calldata[:4] == INCREASE_SELECTOR
        (decoded,) = decode([INCREASE_PARAMS_TYPE], params.calldata[4:])
        assert decoded[0] == 42
        assert decoded[1] == position.mint_amounts.amount0
        assert decoded[5] == NOW + 1200

    def test_use_native_wraps_in_multicall(self, make_pool):
        pool = make_pool(token0=USDC, token1=WETH, fee=500, tick=0, address=RECIPIENT)
        position = Position.from_amounts(pool, -200, 200, 100 * E18, 100 * E18)
        opts = MintOptions.create(RECIPIENT, now=NOW, use_native=WETH)

        params = add_call_parameters(position, opts)

        assert params.value == position.mint_amounts.amount1
        assert params.calldata[:4] == MULTICALL_SELECTOR
        (calls,) = decode(['bytes[]'], params.calldata[4:])
        assert len(calls) == 2
        assert calls[0][:4] == MINT_SELECTOR
        assert calls[1] == REFUND_ETH_SELECTOR

    def test_use_native_token0_side(self, make_pool):
        pool = make_pool(token0=WETH, token1="0xdAC17F958D2ee523a2206206994597C13D831ec7",
                         fee=3000, tick=0, address=RECIPIENT)
        position = Position.from_amounts(pool, -600, 600, E18, E18)

        params = add_call_parameters(position, MintOptions.create(RECIPIENT, now=NOW, use_native=WETH))

        assert params.value == position.mint_amounts.amount0

    def test_use_native_not_in_pool(self, position):
        opts = MintOptions.create(RECIPIENT, now=NOW, use_native=WETH)

        with pytest.raises(ValueError, match="NO_WETH"):
            add_call_parameters(position, opts)

    def test_zero_liquidity_rejected(self, make_pool, options):
        position = Position(make_pool(), -20, 20, 0)

        with pytest.raises(ValueError, match="ZERO_LIQUIDITY"):
            add_call_parameters(position, options)

    def test_single_call_not_wrapped(self):
        assert encode_multicall([b'\x01\x02']) == b'\x01\x02'

    def test_calldata_hex(self):
        assert MethodParameters(calldata=b'\xab\xcd', value=0).calldata_hex == '0xabcd'


# ============================================================
# MintExecutor
# ============================================================

class TestMintExecutor:

    @pytest.fixture
    def executor(self, mock_w3, mock_account):
        nonce_manager = NonceManager(mock_w3, mock_account.address)
        executor = MintExecutor(mock_w3, POSITION_MANAGER, mock_account, nonce_manager)
        executor.contract.events.IncreaseLiquidity.return_value.process_receipt.return_value = [
            {'args': {'tokenId': 777, 'liquidity': 12345, 'amount0': 10, 'amount1': 20}}
        ]
        executor.contract.events.Transfer.return_value.process_receipt.return_value = []
        return executor

    def test_execute_success(self, executor, position, options, mock_account):
        result = executor.execute(position, options)

        assert isinstance(result, MintResult)
        assert result.token_id == 777
        assert result.liquidity == 12345
        assert result.amount0 == 10
        assert result.amount1 == 20
        assert result.gas_used == 300_000
        assert result.tx_hash == '0x' + '1234' * 16

    def test_transaction_fields(self, executor, position, options, mock_account):
        executor.execute(position, options)

        tx = mock_account.sign_transaction.call_args[0][0]
        expected = add_call_parameters(position, options)

        assert tx['from'] == mock_account.address
        assert tx['to'] == POSITION_MANAGER
        assert tx['data'] == expected.calldata_hex
        assert tx['value'] == 0
        assert tx['nonce'] == 100
        assert tx['gas'] == 480_000  # 400k estimate + 20%
        assert tx['chainId'] == 1
        assert tx['maxFeePerGas'] == 21_000_000_000
        assert tx['maxPriorityFeePerGas'] == 1_000_000_000

    def test_nonce_consumed(self, executor, position, options):
        executor.execute(position, options)

        assert executor.nonce_manager.get_next_nonce() == 101

    def test_reverted(self, executor, position, options, mock_w3, mock_receipt_fail):
        mock_w3.eth.wait_for_transaction_receipt.return_value = mock_receipt_fail

        with pytest.raises(TransactionRevertedError, match="mint transaction reverted"):
            executor.execute(position, options)

    def test_transfer_event_fallback(self, executor, position, options):
        executor.contract.events.IncreaseLiquidity.return_value.process_receipt.return_value = []
        executor.contract.events.Transfer.return_value.process_receipt.return_value = [
            {'args': {'from': '0x' + '00' * 20, 'to': RECIPIENT, 'tokenId': 555}}
        ]

        result = executor.execute(position, options)

        assert result.token_id == 555
        assert result.liquidity == 0

    def test_no_events(self, executor, position, options):
        executor.contract.events.IncreaseLiquidity.return_value.process_receipt.return_value = []

        result = executor.execute(position, options)

        assert result.token_id == 0
        assert result.tx_hash.startswith('0x')

    def test_increase_liquidity_event_matched_by_token_id(self, executor, position):
        executor.contract.events.IncreaseLiquidity.return_value.process_receipt.return_value = [
            {'args': {'tokenId': 1, 'liquidity': 1, 'amount0': 1, 'amount1': 1}},
            {'args': {'tokenId': 42, 'liquidity': 99, 'amount0': 5, 'amount1': 6}},
        ]
        opts = MintOptions.create(RECIPIENT, now=NOW, token_id=42)

        result = executor.execute(position, opts)

        assert result.token_id == 42
        assert result.liquidity == 99

    def test_no_account(self, mock_w3, position, options):
        executor = MintExecutor(mock_w3, POSITION_MANAGER)

        with pytest.raises(RuntimeError, match="Account not configured"):
            executor.execute(position, options)

    def test_gas_params_failure_releases_nonce(self, executor, position, options, monkeypatch):
        """Ошибка до отправки: nonce освобождается."""
        monkeypatch.setattr(
            "v3_minter.contracts.position_manager.get_gas_params",
            Mock(side_effect=ConnectionError("rpc down"))
        )

        with pytest.raises(ConnectionError):
            executor.execute(position, options)

        assert executor.nonce_manager.get_next_nonce() == 100
