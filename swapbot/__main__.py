# swapbot/__main__.py
from __future__ import annotations
import argparse
import signal
import sys
from typing import Optional, Sequence

# ---- load .env if present ----
from dotenv import load_dotenv
load_dotenv()

from pydantic import ValidationError

from swapbot.exceptions import SessionError, SwapBotError
from swapbot.orchestrators.bot_orchestrator import BotOrchestrator, BotRuntime
from swapbot.repositories.status_repository import STATUS_SESSION_LOST
from swapbot.utils.config import BotConfig, load_bot_config
from swapbot.utils.log_config import logger_manager

logger = logger_manager.setup_logger("swapbot.main")


def _connect(config: BotConfig) -> BotRuntime:
    runtime = BotRuntime.connect(config)
    runtime.status.subscribe(lambda s: print(f"Bot Status: {s}", flush=True))
    runtime.history.subscribe(
        lambda e: print(f"  {e.asset_label:<8} {e.direction.value:<4} {e.amount:>20}  {e.tx_url or e.short_hash}", flush=True)
    )
    return runtime


def run_command(config: BotConfig) -> int:
    runtime = _connect(config)
    bot = BotOrchestrator(runtime)

    def shutdown(*_):
        logger.info("🛑 Shutdown signal received, stopping bot...")
        bot.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    bot.start(config.interval_secs, config.duration_minutes)
    # wait in short slices so signals are handled promptly
    while not bot.wait_until_idle(0.5):
        pass

    if not runtime.is_valid:
        logger.error("Chain changed; restart the bot to reconnect.")
        return 2
    return 2 if STATUS_SESSION_LOST in bot.notices else 0


def swap_command(config: BotConfig) -> int:
    runtime = _connect(config)
    result = BotOrchestrator(runtime).swap_once()
    return 0 if result is not None and result.ok else 1


def balance_command(config: BotConfig) -> int:
    runtime = _connect(config)
    address = runtime.session.current_address()
    native = runtime.exchange.native_balance(address)
    token = runtime.exchange.token_balance(address)
    print(f"Address: {address}")
    print(f"Native:  {runtime.exchange.wei_to_native(native):.6f}")
    print(f"{config.asset_label}:  {token} (base units)")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="swapbot", description="Alternating buy/sell swap bot")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Start the scheduled bot")
    run_parser.add_argument("--interval", type=int, default=None, help="Seconds between swaps")
    run_parser.add_argument("--duration", type=int, default=None, help="Run time in minutes")
    run_parser.add_argument("--amount", type=str, default=None, help="Native amount per buy")

    swap_parser = subparsers.add_parser("swap", help="Run a single swap cycle now")
    swap_parser.add_argument("--amount", type=str, default=None, help="Native amount per buy")

    subparsers.add_parser("balance", help="Show native and token balances")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_bot_config(
            args.config,
            interval_secs=getattr(args, "interval", None),
            duration_minutes=getattr(args, "duration", None),
            swap_amount=getattr(args, "amount", None),
        )
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    logger_manager.configure(level=config.log_level, log_dir=config.log_dir,
                             max_bytes=config.log_max_bytes, backup_count=config.log_backup_count)

    try:
        if args.command == "run":
            return run_command(config)
        if args.command == "swap":
            return swap_command(config)
        return balance_command(config)
    except SessionError as e:
        logger.error(f"Failed to connect wallet: {e}")
        return 1
    except SwapBotError as e:
        logger.error(f"{e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
