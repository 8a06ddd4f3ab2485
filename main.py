"""
Uniswap V3 Liquidity Minter CLI

Создание позиции ликвидности вокруг текущей цены пула:
    python main.py preview --token-a USDC --token-b DAI --fee 500 --amount-a 100 --amount-b 100
    python main.py mint    --token-a USDC --token-b DAI --fee 500 --amount-a 100 --amount-b 100

RPC_URL, PRIVATE_KEY, CHAIN_ID читаются из .env.
"""

import argparse
import logging
import sys
from web3 import Web3

from config import (
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_OFFSET_SPACINGS,
    DEFAULT_SLIPPAGE_BPS,
    FEE_TIERS,
    get_chain_config,
    get_token,
    load_settings,
)
from v3_minter.contracts.abis import ERC20_ABI
from v3_minter.math.ticks import get_price_range_for_tick_range, tick_to_price
from v3_minter.minter import LiquidityMinter, MintRequest
from v3_minter.position import Token

logger = logging.getLogger(__name__)


def resolve_token(w3: Web3, value: str, chain_id: int) -> Token:
    """Токен по символу из реестра или по адресу (decimals/symbol читаются из сети)."""
    if Web3.is_address(value):
        contract = w3.eth.contract(address=Web3.to_checksum_address(value), abi=ERC20_ABI)
        return Token(
            chain_id=chain_id,
            address=value,
            decimals=contract.functions.decimals().call(),
            symbol=contract.functions.symbol().call(),
        )
    cfg = get_token(value, chain_id)
    return Token(chain_id=chain_id, address=cfg.address, decimals=cfg.decimals, symbol=cfg.symbol)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Uniswap V3 liquidity position minter")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG logging")
    parser.add_argument("--env-file", default=None, help="Путь к .env")

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("preview", "Показать пул и позицию без отправки транзакций"),
        ("mint", "Approve + mint позиции"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--token-a", required=True, help="Символ или адрес токена")
        sub.add_argument("--token-b", required=True, help="Символ или адрес токена")
        sub.add_argument("--fee", type=int, default=FEE_TIERS["LOW"], help="Fee tier (100, 500, 3000, 10000)")
        sub.add_argument("--amount-a", required=True, help="Сумма token-a (например 100.5)")
        sub.add_argument("--amount-b", required=True, help="Сумма token-b")
        sub.add_argument("--offset", type=int, default=DEFAULT_OFFSET_SPACINGS,
                         help="Ширина диапазона в tick spacing от текущей цены")
        sub.add_argument("--slippage-bps", type=int, default=DEFAULT_SLIPPAGE_BPS)
        sub.add_argument("--deadline", type=int, default=DEFAULT_DEADLINE_SECONDS,
                         help="Deadline в секундах от текущего времени")
        sub.add_argument("--imprecise", action="store_true",
                         help="Округления ликвидности как в on-chain LiquidityAmounts")
        if name == "mint":
            sub.add_argument("--recipient", default=None, help="Получатель NFT (по умолчанию свой адрес)")
            sub.add_argument("-y", "--yes", action="store_true", help="Не спрашивать подтверждение")

    return parser


def print_preview(preview, token0: Token, token1: Token):
    pool = preview.pool
    position = preview.position
    price_lower, price_upper = get_price_range_for_tick_range(position.tick_lower, position.tick_upper)
    scale = 10 ** (token0.decimals - token1.decimals)

    print("\n" + "=" * 60)
    print(f"POOL {pool.address}")
    print("=" * 60)
    print(f"  {token0.symbol}/{token1.symbol}  fee={pool.fee}  tickSpacing={pool.tick_spacing}")
    print(f"  tick={pool.tick}  price={tick_to_price(pool.tick) * scale:.6f} {token1.symbol} per {token0.symbol}")
    print(f"  liquidity={pool.liquidity}")
    print("\nPOSITION")
    print(f"  ticks: [{position.tick_lower}, {position.tick_upper}]")
    print(f"  price range: {price_lower * scale:.6f} - {price_upper * scale:.6f}")
    print(f"  liquidity: {position.liquidity}")
    print(f"  {token0.symbol}: desired={preview.desired.amount0} min={preview.minimum.amount0}")
    print(f"  {token1.symbol}: desired={preview.desired.amount1} min={preview.minimum.amount1}")
    print("=" * 60)


def run(args) -> int:
    settings = load_settings(args.env_file)
    chain = get_chain_config(settings.chain_id)

    private_key = settings.private_key if args.command == "mint" else None
    if args.command == "mint" and not private_key:
        raise RuntimeError("PRIVATE_KEY is not set")

    minter = LiquidityMinter.from_rpc(
        rpc_url=settings.rpc_url,
        factory_address=chain.pool_factory,
        position_manager_address=chain.position_manager,
        private_key=private_key,
        init_code_hash=chain.pool_init_code_hash,
    )

    token_a = resolve_token(minter.w3, args.token_a, settings.chain_id)
    token_b = resolve_token(minter.w3, args.token_b, settings.chain_id)
    token0, token1 = (token_a, token_b) if token_a.sorts_before(token_b) else (token_b, token_a)

    request = MintRequest(
        token_a=token_a,
        token_b=token_b,
        fee=args.fee,
        amount_a=args.amount_a,
        amount_b=args.amount_b,
        offset_spacings=args.offset,
        use_full_precision=not args.imprecise,
        slippage_bps=args.slippage_bps,
        deadline_seconds=args.deadline,
        recipient=getattr(args, "recipient", None),
    )

    preview = minter.preview(request)
    print_preview(preview, token0, token1)

    registered = minter.resolver.lookup_pool_address(token0.address, token1.address, args.fee)
    if registered is None:
        logger.warning("Factory getPool returned zero address")
    elif registered.lower() != preview.pool.address.lower():
        logger.warning(f"Factory pool {registered} differs from computed {preview.pool.address}")

    if args.command == "preview":
        return 0

    if not args.yes:
        confirm = input("\nОтправить approve + mint? (yes/no): ").strip().lower()
        if confirm != "yes":
            print("Отменено")
            return 0

    result = minter.mint(request)

    print("\nSUCCESS!")
    minted = result.position
    if (minted.tick_lower, minted.tick_upper) != (preview.position.tick_lower, preview.position.tick_upper):
        logger.warning(
            f"Pool moved after preview: minted ticks [{minted.tick_lower}, {minted.tick_upper}], "
            f"previewed [{preview.position.tick_lower}, {preview.position.tick_upper}]"
        )

    print(f"Token ID: {result.mint.token_id}")
    print(f"Ticks: [{minted.tick_lower}, {minted.tick_upper}]")
    print(f"Liquidity: {result.mint.liquidity} (built {minted.liquidity})")
    print(f"Gas used: {result.mint.gas_used}")
    for tx_hash in result.tx_hashes:
        print(f"TX: {chain.explorer_url}/tx/{tx_hash}")
    return 0


def main(argv=None) -> int:
    """Главная функция."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    try:
        return run(args)
    except KeyboardInterrupt:
        print("\nПрервано")
        return 130
    except Exception as e:
        logger.error(f"Failed: {e}", exc_info=args.verbose)
        return 1


if __name__ == "__main__":
    sys.exit(main())
