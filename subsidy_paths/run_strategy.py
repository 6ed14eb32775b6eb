#!/usr/bin/env python3

# Allow running as a script: `python subsidy_paths/run_strategy.py ...`
if __name__ == "__main__" and __package__ is None:
    import sys
    from pathlib import Path

    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import argparse
import asyncio
import importlib
import inspect
import json
import sys
from typing import Any

from loguru import logger

from subsidy_paths.core.config import CONFIG, get_wallets, load_config
from subsidy_paths.core.strategies.Strategy import Strategy
from subsidy_paths.core.utils.transaction import private_key_signer

DEFAULT_STRATEGY = "subsidized_leverage_strategy"


def get_strategy_config(
    strategy_name: str,
    *,
    wallet_label: str | None = None,
    main_wallet_label: str | None = None,
) -> dict[str, Any]:
    config = dict(CONFIG.get("strategy", {}))
    wallets = {w["label"]: w for w in get_wallets() if "label" in w}

    main_label = str(main_wallet_label).strip() if main_wallet_label else "main"
    strat_label = str(wallet_label).strip() if wallet_label else strategy_name

    if "main_wallet" not in config and main_label in wallets:
        config["main_wallet"] = {"address": wallets[main_label]["address"]}
    if "strategy_wallet" not in config and strat_label in wallets:
        config["strategy_wallet"] = {"address": wallets[strat_label]["address"]}

    by_addr = {
        str(w.get("address", "")).lower(): w for w in get_wallets() if w.get("address")
    }
    for key in ("main_wallet", "strategy_wallet"):
        if wallet := config.get(key):
            if entry := by_addr.get(str(wallet.get("address", "")).lower()):
                if pk := entry.get("private_key") or entry.get("private_key_hex"):
                    wallet["private_key_hex"] = pk
    return config


def create_signing_callback(key: str, config: dict[str, Any]):
    wallet = config.get(key) or {}
    pk = wallet.get("private_key") or wallet.get("private_key_hex")
    return private_key_signer(pk) if pk else None


def find_strategy_class(module) -> type[Strategy]:
    for _, obj in inspect.getmembers(module, inspect.isclass):
        if issubclass(obj, Strategy) and obj is not Strategy:
            return obj
    raise ValueError(f"No Strategy subclass found in {module.__name__}")


async def run_strategy(strategy_name: str, action: str = "status", **kw):
    config = get_strategy_config(
        strategy_name,
        wallet_label=kw.pop("wallet_label", None),
        main_wallet_label=kw.pop("main_wallet_label", None),
    )

    module = importlib.import_module(
        f"subsidy_paths.strategies.{strategy_name}.strategy"
    )
    strategy_cls = find_strategy_class(module)
    strategy = strategy_cls(
        config,
        main_wallet_signing_callback=create_signing_callback("main_wallet", config),
        strategy_wallet_signing_callback=create_signing_callback(
            "strategy_wallet", config
        ),
    )
    await strategy.setup()

    amount = kw.get("amount")
    if action == "status":
        result: Any = await strategy.status()
    elif action == "deposit":
        result = await strategy.deposit(main_token_amount=int(amount or 0))
    elif action == "withdraw":
        result = await strategy.withdraw(amount=None if amount is None else int(amount))
    elif action == "update":
        result = await strategy.update()
    elif action == "exit":
        result = await strategy.exit()
    elif action == "harvest":
        result = {"reported_total_assets": await strategy.harvest_and_report()}
    elif action == "tend":
        decision = await strategy.tend_decision()
        if decision.should_tend or kw.get("force"):
            await strategy.tend(int(amount) if amount is not None else await strategy._idle())
        result = {"tended": decision.should_tend or bool(kw.get("force")), "reason": decision.reason}
    elif action == "run":
        while True:
            try:
                result = await strategy.update()
                logger.info(f"Update: {result}")
                await asyncio.sleep(kw.get("interval", 60))
            except asyncio.CancelledError:
                result = (True, "stopped")
                break
    else:
        raise ValueError(f"Unknown action: {action}")

    print(
        json.dumps(result, indent=2, default=str)
        if isinstance(result, dict)
        else f"{action}: {result}"
    )
    return result


def main():
    p = argparse.ArgumentParser(description="Run a subsidy_paths strategy action")
    p.add_argument(
        "strategy_pos",
        nargs="?",
        help="Strategy name (positional; or use --strategy)",
    )
    p.add_argument(
        "--strategy",
        dest="strategy",
        default=None,
        help="Strategy name (preferred over positional)",
    )
    p.add_argument(
        "--action",
        default="status",
        choices=["run", "deposit", "withdraw", "status", "update", "exit", "harvest", "tend"],
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to config JSON (default: config.json at the project root)",
    )
    p.add_argument(
        "--amount",
        type=int,
        default=None,
        help="Amount in loan-asset base units (deposit/withdraw/tend)",
    )
    p.add_argument("--interval", type=int, default=60)
    p.add_argument("--force", action="store_true", help="Tend even when not triggered")
    p.add_argument(
        "--wallet-label",
        dest="wallet_label",
        default=None,
        help="Wallet label to use as the strategy wallet (overrides strategy name lookup)",
    )
    p.add_argument(
        "--main-wallet-label",
        dest="main_wallet_label",
        default=None,
        help="Wallet label to use as the main wallet (default: main)",
    )
    p.add_argument("--debug", action="store_true")
    args = p.parse_args()

    strategy_name = args.strategy or args.strategy_pos or DEFAULT_STRATEGY

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.debug else "INFO")

    try:
        load_config(args.config, require_exists=bool(args.config))
    except FileNotFoundError as exc:
        raise SystemExit(str(exc)) from exc

    asyncio.run(
        run_strategy(
            str(strategy_name),
            args.action,
            amount=args.amount,
            interval=args.interval,
            force=args.force,
            wallet_label=args.wallet_label,
            main_wallet_label=args.main_wallet_label,
        )
    )


if __name__ == "__main__":
    main()
