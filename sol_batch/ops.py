"""End-to-end flows: query, fund, collect and mint across many wallets.

Every mutating flow is split into ``plan_*`` (preconditions, probing,
planning, batching; no transactions sent) and a runner that hands the plan to
the executor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union

from rich.console import Console
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_batch.batcher import MINT_GROUP_SIZE, NATIVE_GROUP_SIZE, Batch, batch, group_size_for
from sol_batch.errors import AccountDecodeError, PreconditionError
from sol_batch.executor import ExecutionResult, check_amount, check_fee_payer, execute, submit
from sol_batch.instructions import (
    LAMPORTS_PER_SOL,
    MINT_SIZE,
    NATIVE_DECIMALS,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    build_create_account_ix,
    build_create_ata_ix,
    build_initialize_mint2_ix,
    get_associated_token_address,
)
from sol_batch.planner import AmountPolicy, Fixed, plan_allocation, plan_collect, plan_mint, to_raw, to_ui
from sol_batch.probe import NATIVE, Asset, probe
from sol_batch.report import print_balances
from sol_batch.rpc import PubkeyLike, RpcClient

Amount = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class BalanceRecord:
    address: str
    balance: float
    raw_amount: int
    lamports: int
    error: Optional[str] = None


@dataclass(frozen=True)
class MintInfo:
    address: Pubkey
    decimals: int
    supply: int
    mint_authority: Optional[str]
    freeze_authority: Optional[str]


@dataclass
class RunPlan:
    batches: List[Batch]
    group_size: int
    create_destination: Optional[Instruction] = None
    skipped: Dict[str, str] = field(default_factory=dict)

    @property
    def operation_count(self) -> int:
        return sum(len(b) for b in self.batches)


# ---------------- Queries ----------------
def query_balances(
    rpc: RpcClient,
    addresses: Sequence[PubkeyLike],
    *,
    console: Optional[Console] = None,
) -> List[BalanceRecord]:
    records = [
        BalanceRecord(
            address=str(r.address),
            balance=r.lamports / LAMPORTS_PER_SOL,
            raw_amount=r.lamports,
            lamports=r.lamports,
            error=r.error,
        )
        for r in probe(rpc, addresses, NATIVE)
    ]
    print_balances(records, "SOL balances", console=console)
    return records


def query_token_balances(
    rpc: RpcClient,
    mint: PubkeyLike,
    owners: Sequence[PubkeyLike],
    *,
    console: Optional[Console] = None,
) -> List[BalanceRecord]:
    asset = Asset.token(mint)
    records = []
    for r in probe(rpc, owners, asset):
        amount = r.token_amount
        records.append(
            BalanceRecord(
                address=str(r.address),
                balance=amount.ui_amount if amount else 0.0,
                raw_amount=amount.raw if amount else 0,
                lamports=r.lamports,
                error=r.error,
            )
        )
    print_balances(records, f"mint: {asset.mint}", console=console)
    return records


def get_mint_info(rpc: RpcClient, mint: PubkeyLike) -> MintInfo:
    """Fetch and check a classic SPL mint; Token-2022 mints are rejected."""
    mint_pk = Pubkey.from_string(mint) if isinstance(mint, str) else mint
    value = rpc.get_account_info(mint_pk)
    if value is None:
        raise PreconditionError(f"Invalid mint address: {mint_pk}")
    owner = str(value.get("owner", ""))
    if owner == str(TOKEN_2022_PROGRAM_ID):
        raise PreconditionError(f"Unsupported token 2022 mint: {mint_pk}")
    if owner != str(TOKEN_PROGRAM_ID):
        raise PreconditionError(f"Invalid mint owner {owner} for {mint_pk}")

    data = value.get("data")
    parsed = data.get("parsed") if isinstance(data, dict) else None
    if not parsed or parsed.get("type") != "mint":
        raise AccountDecodeError(f"{mint_pk} is not a parsed mint account")
    info = parsed.get("info") or {}
    try:
        return MintInfo(
            address=mint_pk,
            decimals=int(info["decimals"]),
            supply=int(info.get("supply", 0)),
            mint_authority=info.get("mintAuthority"),
            freeze_authority=info.get("freezeAuthority"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise AccountDecodeError(f"{mint_pk}: malformed mint data ({e})") from e


# ---------------- Funding ----------------
def plan_allocate_sol(
    rpc: RpcClient,
    payer: Keypair,
    targets: Sequence[Pubkey],
    amount: Amount,
) -> RunPlan:
    check_amount(Fixed(amount))
    lamports = to_raw(amount, NATIVE_DECIMALS)
    balance = rpc.get_balance(payer.pubkey())
    needed = lamports * len(targets)
    if balance == 0 or balance < needed:
        raise PreconditionError(
            f"payer balance {to_ui(balance, NATIVE_DECIMALS)} SOL is not enough for "
            f"{len(targets)} x {amount} SOL"
        )
    outcome = plan_allocation(payer.pubkey(), targets, lamports)
    return RunPlan(
        batches=batch(outcome.operations, NATIVE_GROUP_SIZE),
        group_size=NATIVE_GROUP_SIZE,
        skipped=outcome.skipped,
    )


def allocate_sol(
    rpc: RpcClient,
    payer: Keypair,
    targets: Sequence[Pubkey],
    amount: Amount,
    *,
    sleep_ms: int = 0,
    console: Optional[Console] = None,
) -> List[ExecutionResult]:
    """Send ``amount`` SOL from ``payer`` to every target."""
    plan = plan_allocate_sol(rpc, payer, targets, amount)
    return execute(rpc, plan.batches, payer, sleep_ms=sleep_ms, console=console)


# ---------------- Collecting ----------------
def plan_collect_sol(
    rpc: RpcClient,
    payer: Keypair,
    sources: Sequence[Keypair],
    policy: AmountPolicy,
    destination: Optional[Pubkey] = None,
) -> RunPlan:
    check_amount(policy)
    check_fee_payer(rpc, payer)
    destination = destination or payer.pubkey()
    # the fee payer is never a sweep source
    payer_skipped = any(s.pubkey() == payer.pubkey() for s in sources)
    sources = [s for s in sources if s.pubkey() != payer.pubkey()]

    print(f"Probing {len(sources)} wallets...")
    results = probe(rpc, [s.pubkey() for s in sources], NATIVE)
    outcome = plan_collect(results, sources, policy, destination, NATIVE)
    if payer_skipped:
        outcome.skip(payer.pubkey(), "fee payer")
    size = group_size_for(outcome.operations, native=True)
    return RunPlan(batches=batch(outcome.operations, size), group_size=size, skipped=outcome.skipped)


def collect_sol(
    rpc: RpcClient,
    payer: Keypair,
    sources: Sequence[Keypair],
    policy: AmountPolicy,
    destination: Optional[Pubkey] = None,
    *,
    sleep_ms: int = 0,
    console: Optional[Console] = None,
) -> List[ExecutionResult]:
    """Sweep SOL from ``sources`` to ``destination`` (the payer by default); the payer pays fees."""
    plan = plan_collect_sol(rpc, payer, sources, policy, destination)
    return execute(rpc, plan.batches, payer, sleep_ms=sleep_ms, console=console)


def plan_collect_token(
    rpc: RpcClient,
    mint: PubkeyLike,
    payer: Keypair,
    sources: Sequence[Keypair],
    destination_owner: Pubkey,
    policy: AmountPolicy,
) -> RunPlan:
    check_amount(policy)
    check_fee_payer(rpc, payer)
    asset = Asset.token(mint)
    destination = get_associated_token_address(destination_owner, asset.mint, asset.token_program_id)

    print(f"Probing {len(sources)} token accounts for mint {asset.mint}...")
    results = probe(rpc, [s.pubkey() for s in sources], asset)
    outcome = plan_collect(results, sources, policy, destination, asset)
    size = group_size_for(outcome.operations, native=False)
    batches = batch(outcome.operations, size)

    create_ix = None
    if batches and rpc.get_account_info(destination) is None:
        print(f"destination token account {destination} does not exist; it will be created")
        create_ix = build_create_ata_ix(payer.pubkey(), destination_owner, asset.mint, asset.token_program_id)
    return RunPlan(batches=batches, group_size=size, create_destination=create_ix, skipped=outcome.skipped)


def collect_token(
    rpc: RpcClient,
    mint: PubkeyLike,
    payer: Keypair,
    sources: Sequence[Keypair],
    destination_owner: Pubkey,
    policy: AmountPolicy,
    *,
    sleep_ms: int = 0,
    console: Optional[Console] = None,
) -> List[ExecutionResult]:
    """Move tokens from every source's token account into ``destination_owner``'s.

    With ``ALL`` the source token accounts are also closed and their rent goes
    back to each source wallet.
    """
    plan = plan_collect_token(rpc, mint, payer, sources, destination_owner, policy)
    return execute(
        rpc,
        plan.batches,
        payer,
        create_destination=plan.create_destination,
        sleep_ms=sleep_ms,
        console=console,
    )


# ---------------- Minting ----------------
def plan_create_mint(
    rpc: RpcClient,
    payer: Keypair,
    mint_keypair: Keypair,
    decimals: int = NATIVE_DECIMALS,
    freeze_authority: Optional[Pubkey] = None,
) -> List[Instruction]:
    if not 0 <= decimals <= 255:
        raise PreconditionError(f"decimals must be between 0 and 255 (got {decimals})")
    check_fee_payer(rpc, payer)
    mint = mint_keypair.pubkey()
    if rpc.get_account_info(mint) is not None:
        raise PreconditionError(f"mint account already exists: {mint}")
    rent = rpc.get_minimum_balance_for_rent_exemption(MINT_SIZE)
    return [
        build_create_account_ix(payer.pubkey(), mint, rent, MINT_SIZE, TOKEN_PROGRAM_ID),
        build_initialize_mint2_ix(mint, decimals, payer.pubkey(), freeze_authority),
    ]


def create_mint(
    rpc: RpcClient,
    payer: Keypair,
    mint_keypair: Optional[Keypair] = None,
    decimals: int = NATIVE_DECIMALS,
    freeze_authority: Optional[Pubkey] = None,
) -> Tuple[MintInfo, str]:
    """Create a classic SPL mint with ``payer`` as mint authority.

    A fresh mint keypair is generated when none is given. Returns the new
    mint and the transaction signature.
    """
    mint_keypair = mint_keypair or Keypair()
    ixs = plan_create_mint(rpc, payer, mint_keypair, decimals, freeze_authority)
    signature = submit(rpc, ixs, payer, [mint_keypair])
    print(f"Created mint {mint_keypair.pubkey()}, tx {signature}")
    info = MintInfo(
        address=mint_keypair.pubkey(),
        decimals=decimals,
        supply=0,
        mint_authority=str(payer.pubkey()),
        freeze_authority=str(freeze_authority) if freeze_authority else None,
    )
    return info, signature


def plan_mint_to(
    rpc: RpcClient,
    payer: Keypair,
    mint: PubkeyLike,
    targets: Sequence[Pubkey],
    amount: Amount,
) -> RunPlan:
    check_amount(Fixed(amount))
    info = get_mint_info(rpc, mint)
    if info.mint_authority != str(payer.pubkey()):
        raise PreconditionError(f"Invalid mint authority: {info.mint_authority} (payer is {payer.pubkey()})")
    check_fee_payer(rpc, payer)
    raw_amount = to_raw(amount, info.decimals)

    asset = Asset.token(info.address)
    results = probe(rpc, targets, asset)
    outcome = plan_mint(results, payer.pubkey(), asset, raw_amount, info.decimals)
    return RunPlan(
        batches=batch(outcome.operations, MINT_GROUP_SIZE),
        group_size=MINT_GROUP_SIZE,
        skipped=outcome.skipped,
    )


def mint_to(
    rpc: RpcClient,
    payer: Keypair,
    mint: PubkeyLike,
    targets: Sequence[Pubkey],
    amount: Amount,
    *,
    sleep_ms: int = 0,
    console: Optional[Console] = None,
) -> List[ExecutionResult]:
    """Mint ``amount`` tokens to each target; the payer must be the mint authority."""
    plan = plan_mint_to(rpc, payer, mint, targets, amount)
    return execute(rpc, plan.batches, payer, sleep_ms=sleep_ms, console=console)
