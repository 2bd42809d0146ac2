"""sol-batch: fund, sweep, mint and query across many Solana wallets.

Wallets come from config.toml (mnemonic-derived range plus base58 keys).
Mutating commands default to DRY RUN; pass --execute to broadcast.

Env:
  - SOL_BATCH_CONFIG (default: ./config.toml)
  - MNEMONIC (overrides wallet.mnemonic)
  - RPC_URL or SOLANA_URL, HELIUS_API_KEY (RPC override)
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_batch import __version__
from sol_batch.config import Config, load_config, resolve_rpc_url
from sol_batch.errors import SolBatchError
from sol_batch.executor import execute
from sol_batch.keys import load_keypair_any, parse_pubkey
from sol_batch.ops import (
    RunPlan,
    create_mint,
    plan_allocate_sol,
    plan_collect_sol,
    plan_collect_token,
    plan_create_mint,
    plan_mint_to,
    query_balances,
    query_token_balances,
)
from sol_batch.planner import ALL, AmountPolicy, Fixed
from sol_batch.report import print_plan, print_results
from sol_batch.rpc import RpcClient


def _add_policy_args(p: argparse.ArgumentParser) -> None:
    grp = p.add_mutually_exclusive_group(required=True)
    grp.add_argument("--amount", help="Fixed amount per wallet (UI units)")
    grp.add_argument("--all", action="store_true", help="Move the whole balance")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="sol-batch", description=__doc__.splitlines()[0])
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--config", default=None, help="Config file (default: env SOL_BATCH_CONFIG or ./config.toml)")
    ap.add_argument("--rpc-url", default="", help="RPC URL override (default: RPC_URL/SOLANA_URL/HELIUS_API_KEY/config)")
    ap.add_argument("--execute", action="store_true", help="Broadcast transactions (default: dry run)")
    ap.add_argument("--sleep-ms", type=int, default=None, help="Sleep between transactions (default: network.sleep)")
    ap.add_argument("--payer-index", type=int, default=0, help="Index of the fee payer among config wallets (default: 0)")
    ap.add_argument("--payer-keypair", default="", help="Fee payer keypair file; overrides --payer-index")
    ap.add_argument("--limit", type=int, default=0, help="Only use the first N config wallets (0 = all)")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("query-sol", help="Show SOL balances")
    p.add_argument("addresses", nargs="*", help="Addresses (default: config wallets)")

    p = sub.add_parser("query-token", help="Show token balances for a mint")
    p.add_argument("--mint", required=True)
    p.add_argument("addresses", nargs="*", help="Owner addresses (default: config wallets)")

    p = sub.add_parser("allocate-sol", help="Send a fixed SOL amount from the payer to many wallets")
    p.add_argument("--amount", required=True, help="SOL per target")
    p.add_argument("targets", nargs="*", help="Target addresses (default: config wallets except the payer)")

    p = sub.add_parser("collect-sol", help="Sweep SOL from config wallets")
    _add_policy_args(p)
    p.add_argument("--destination", default="", help="Receiving address (default: the payer)")

    p = sub.add_parser("collect-token", help="Sweep a token from config wallets")
    p.add_argument("--mint", required=True)
    p.add_argument("--destination", required=True, help="Receiving wallet (owner of the destination token account)")
    _add_policy_args(p)

    p = sub.add_parser("create-token", help="Create a new SPL mint with the payer as mint authority")
    p.add_argument("--decimals", type=int, default=9, help="Mint decimals (default: 9)")
    p.add_argument("--mint-keypair", default="", help="Keypair file for the mint address (default: generate one)")

    p = sub.add_parser("mint-token", help="Mint a token to many wallets (payer must be mint authority)")
    p.add_argument("--mint", required=True)
    p.add_argument("--amount", required=True, help="Tokens per target")
    p.add_argument("targets", nargs="*", help="Target addresses (default: config wallets)")

    return ap


def _wallets(config: Config, limit: int) -> List[Keypair]:
    wallets = config.wallets()
    return wallets[:limit] if limit and limit > 0 else wallets


def _payer(args: argparse.Namespace, wallets: Sequence[Keypair]) -> Keypair:
    if args.payer_keypair:
        return load_keypair_any(Path(args.payer_keypair).expanduser().resolve())
    if not 0 <= args.payer_index < len(wallets):
        raise SolBatchError(f"--payer-index {args.payer_index} out of range ({len(wallets)} wallets configured)")
    return wallets[args.payer_index]


def _addresses(values: Sequence[str], wallets: Sequence[Keypair], exclude: Optional[Pubkey] = None) -> List[Pubkey]:
    if values:
        return [parse_pubkey(v) for v in values]
    return [w.pubkey() for w in wallets if w.pubkey() != exclude]


def _policy(args: argparse.Namespace) -> AmountPolicy:
    return ALL if args.all else Fixed(args.amount)


def _create_token(args: argparse.Namespace, rpc: RpcClient, payer: Keypair) -> int:
    if args.mint_keypair:
        mint_kp = load_keypair_any(Path(args.mint_keypair).expanduser().resolve())
    else:
        mint_kp = Keypair()
    print(f"Mint: {mint_kp.pubkey()} (decimals {args.decimals}, authority {payer.pubkey()})")
    if not args.execute:
        plan_create_mint(rpc, payer, mint_kp, args.decimals)
        print("DRY RUN: not broadcasting any transactions.")
        return 0
    create_mint(rpc, payer, mint_kp, args.decimals)
    return 0


def _plan(args: argparse.Namespace, rpc: RpcClient, payer: Keypair, wallets: Sequence[Keypair]) -> RunPlan:
    if args.command == "allocate-sol":
        return plan_allocate_sol(rpc, payer, _addresses(args.targets, wallets, payer.pubkey()), args.amount)
    if args.command == "collect-sol":
        destination = parse_pubkey(args.destination) if args.destination else None
        return plan_collect_sol(rpc, payer, wallets, _policy(args), destination)
    if args.command == "collect-token":
        return plan_collect_token(rpc, args.mint, payer, wallets, parse_pubkey(args.destination), _policy(args))
    if args.command == "mint-token":
        return plan_mint_to(rpc, payer, args.mint, _addresses(args.targets, wallets), args.amount)
    raise SolBatchError(f"unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        rpc = RpcClient(resolve_rpc_url(config, args.rpc_url))
        wallets = _wallets(config, args.limit)

        if args.command == "query-sol":
            query_balances(rpc, _addresses(args.addresses, wallets))
            return 0
        if args.command == "query-token":
            query_token_balances(rpc, parse_pubkey(args.mint), _addresses(args.addresses, wallets))
            return 0

        payer = _payer(args, wallets)
        sleep_ms = config.network.sleep if args.sleep_ms is None else max(args.sleep_ms, 0)

        print(f"RPC: {rpc.url}")
        print(f"Payer: {payer.pubkey()}")
        print(f"Wallets: {len(wallets)}")
        print(f"Mode: {'EXECUTE' if args.execute else 'DRY RUN'}")
        print("-" * 80)

        if args.command == "create-token":
            return _create_token(args, rpc, payer)
        plan = _plan(args, rpc, payer, wallets)
    except (SolBatchError, ValueError, OSError) as exc:
        print(f"ERROR: {exc}")
        return 2

    if not plan.batches:
        print("Nothing to do.")
        return 0

    print_plan(plan.batches)
    if plan.create_destination is not None:
        print("The first transaction also creates the destination token account.")
    if not args.execute:
        print("DRY RUN: not broadcasting any transactions.")
        return 0

    results = execute(rpc, plan.batches, payer, create_destination=plan.create_destination, sleep_ms=sleep_ms)
    print("-" * 80)
    print_results(results)
    failed = [r for r in results if not r.ok]
    print(f"Transactions sent: {len(results)}  uncertain: {len(failed)}")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
