"""
Configuration for Uniswap V3 Liquidity Minter

Адреса контрактов Uniswap V3, реестр токенов и настройки по умолчанию.
Секреты (RPC_URL, PRIVATE_KEY) читаются из окружения / .env.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional
from dotenv import load_dotenv


@dataclass
class ChainConfig:
    """Конфигурация сети."""
    chain_id: int
    rpc_url: str
    explorer_url: str
    native_token: str
    wrapped_native: str
    position_manager: str
    pool_factory: str
    # keccak256 of UniswapV3Pool creation code
    pool_init_code_hash: str = "0xe34f199b19b2b4f47f68442619d555527d244f78a3297ea89325f843f87b8b54"


@dataclass
class TokenConfig:
    """Конфигурация токена."""
    address: str
    symbol: str
    decimals: int


# ============================================================
# CHAIN CONFIGURATIONS
# ============================================================

# Ethereum Mainnet - Uniswap V3
ETHEREUM = ChainConfig(
    chain_id=1,
    rpc_url="https://eth.llamarpc.com",
    explorer_url="https://etherscan.io",
    native_token="ETH",
    wrapped_native="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    # Uniswap V3 NonfungiblePositionManager
    position_manager="0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
    # Uniswap V3 Factory
    pool_factory="0x1F98431c8aD98523631AE4a59f267346ea31F984"
)

# Base Mainnet
# Note: mainnet.base.org has strict rate limits, use alternative RPC if needed
BASE = ChainConfig(
    chain_id=8453,
    rpc_url="https://base.llamarpc.com",
    explorer_url="https://basescan.org",
    native_token="ETH",
    wrapped_native="0x4200000000000000000000000000000000000006",
    # Uniswap V3 NonfungiblePositionManager (Base)
    position_manager="0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1",
    # Uniswap V3 Factory (Base)
    pool_factory="0x33128a8fC17869897dcE68Ed026d694621f6FDfD"
)

CHAINS: Dict[int, ChainConfig] = {
    1: ETHEREUM,
    8453: BASE,
}

# ============================================================
# TOKEN CONFIGURATIONS
# ============================================================

TOKENS_ETH: Dict[str, TokenConfig] = {
    "USDC": TokenConfig(
        address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        symbol="USDC",
        decimals=6
    ),
    "DAI": TokenConfig(
        address="0x6B175474E89094C44Da98b954EedeAC495271d0F",
        symbol="DAI",
        decimals=18
    ),
    "WETH": TokenConfig(
        address="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        symbol="WETH",
        decimals=18
    ),
    "USDT": TokenConfig(
        address="0xdAC17F958D2ee523a2206206994597C13D831ec7",
        symbol="USDT",
        decimals=6
    ),
}

TOKENS_BASE: Dict[str, TokenConfig] = {
    "WETH": TokenConfig(
        address="0x4200000000000000000000000000000000000006",
        symbol="WETH",
        decimals=18
    ),
    "USDC": TokenConfig(
        address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        symbol="USDC",
        decimals=6  # USDC on Base has 6 decimals
    ),
    "DAI": TokenConfig(
        address="0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb",
        symbol="DAI",
        decimals=18
    ),
}

TOKENS: Dict[int, Dict[str, TokenConfig]] = {
    1: TOKENS_ETH,
    8453: TOKENS_BASE,
}

# ============================================================
# FEE TIERS
# ============================================================

FEE_TIERS = {
    "LOWEST": 100,    # 0.01% - стейблкоины
    "LOW": 500,       # 0.05% - стабильные пары
    "MEDIUM": 3000,   # 0.30% - стандартный tier
    "HIGH": 10000,    # 1.00% - экзотические пары
}

# ============================================================
# DEFAULT SETTINGS
# ============================================================

DEFAULT_SLIPPAGE_BPS = 50          # 0.5%
DEFAULT_DEADLINE_SECONDS = 1200    # 20 минут
DEFAULT_OFFSET_SPACINGS = 2        # диапазон: +-2 tick spacing от текущей цены


@dataclass
class Settings:
    """Настройки из окружения."""
    rpc_url: str
    private_key: Optional[str]
    chain_id: int


def load_settings(env_file: str = None) -> Settings:
    """
    Чтение настроек из .env / окружения.

    RPC_URL по умолчанию берётся из конфигурации сети CHAIN_ID.
    """
    load_dotenv(env_file)

    chain_id = int(os.getenv("CHAIN_ID", "1"))
    rpc_url = os.getenv("RPC_URL") or get_chain_config(chain_id).rpc_url
    private_key = os.getenv("PRIVATE_KEY") or None

    return Settings(rpc_url=rpc_url, private_key=private_key, chain_id=chain_id)


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def get_chain_config(chain_id: int) -> ChainConfig:
    """Получение конфигурации по chain_id."""
    if chain_id not in CHAINS:
        raise ValueError(f"Unknown chain_id: {chain_id}")
    return CHAINS[chain_id]


def get_tokens_for_chain(chain_id: int) -> Dict[str, TokenConfig]:
    """Получение словаря токенов для сети."""
    if chain_id not in TOKENS:
        raise ValueError(f"Tokens not configured for chain_id: {chain_id}")
    return TOKENS[chain_id]


def get_token(symbol: str, chain_id: int = 1) -> TokenConfig:
    """Получение токена по символу (регистр не важен)."""
    tokens = get_tokens_for_chain(chain_id)
    for key, token in tokens.items():
        if key.upper() == symbol.upper():
            return token
    raise ValueError(f"Unknown token: {symbol}")
