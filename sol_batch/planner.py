"""Turn probed account state into per-account operations.

Each account gets exactly one ``Action``, chosen here; accounts that end up
with ``Action.SKIP`` are printed and left out of the returned plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_batch.instructions import (
    NATIVE_DECIMALS,
    build_close_token_account_ix,
    build_create_ata_ix,
    build_mint_to_ix,
    build_token_transfer_ix,
    build_transfer_ix,
)
from sol_batch.probe import AccountProbeResult, Asset


# ---------------- Amount policy ----------------
def to_raw(amount: Union[int, float, str, Decimal], decimals: int) -> int:
    """Scale a UI amount to integer base units: ``amount * 10**decimals``, exactly."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def to_ui(raw: int, decimals: int) -> float:
    return raw / 10**decimals


@dataclass(frozen=True)
class Fixed:
    """Move exactly ``amount`` (UI units) per account; accounts holding less are skipped."""

    amount: Decimal

    def __post_init__(self) -> None:
        try:
            value = Decimal(str(self.amount))
        except InvalidOperation as e:
            raise ValueError(f"invalid amount: {self.amount!r}") from e
        object.__setattr__(self, "amount", value)

    def raw(self, decimals: int) -> int:
        return to_raw(self.amount, decimals)


@dataclass(frozen=True)
class All:
    """Move the whole balance; token sub-accounts are closed afterwards."""


ALL = All()

AmountPolicy = Union[Fixed, All]


# ---------------- Actions / plan ----------------
class Action(Enum):
    TRANSFER_ONLY = "transfer"
    CLOSE_ONLY = "close"
    TRANSFER_AND_CLOSE = "transfer+close"
    MINT = "mint"
    CREATE_AND_MINT = "create+mint"
    SKIP = "skip"

    @property
    def creates(self) -> bool:
        return self is Action.CREATE_AND_MINT

    @property
    def transfers(self) -> bool:
        return self in (Action.TRANSFER_ONLY, Action.TRANSFER_AND_CLOSE)

    @property
    def mints(self) -> bool:
        return self in (Action.MINT, Action.CREATE_AND_MINT)

    @property
    def closes(self) -> bool:
        return self in (Action.CLOSE_ONLY, Action.TRANSFER_AND_CLOSE)


@dataclass(frozen=True)
class PlannedOperation:
    """One account's share of a transaction.

    ``signer`` is ``None`` when the fee payer is the only authority needed
    (funding and minting).
    """

    address: Pubkey
    action: Action
    raw_amount: int
    ui_amount: float
    signer: Optional[Keypair] = None
    create_ix: Optional[Instruction] = None
    transfer_ix: Optional[Instruction] = None
    mint_ix: Optional[Instruction] = None
    close_ix: Optional[Instruction] = None

    def __post_init__(self) -> None:
        if self.action is Action.SKIP:
            raise ValueError("skipped accounts are not planned")
        for wanted, ix, name in (
            (self.action.creates, self.create_ix, "create"),
            (self.action.transfers, self.transfer_ix, "transfer"),
            (self.action.mints, self.mint_ix, "mint"),
            (self.action.closes, self.close_ix, "close"),
        ):
            if wanted != (ix is not None):
                raise ValueError(f"{self.action.value} operation for {self.address} has inconsistent {name} instruction")

    @property
    def signer_key(self) -> Optional[Pubkey]:
        return self.signer.pubkey() if self.signer is not None else None


@dataclass
class PlanOutcome:
    operations: List[PlannedOperation] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)

    def skip(self, address: object, reason: str) -> None:
        self.skipped[str(address)] = reason
        print(f"  skip {address}: {reason}")


def _decimals_for(result: AccountProbeResult, asset: Asset) -> int:
    if asset.is_native:
        return NATIVE_DECIMALS
    return result.token_amount.decimals


def plan_collect(
    results: Sequence[AccountProbeResult],
    signers: Sequence[Keypair],
    policy: AmountPolicy,
    destination: Pubkey,
    asset: Asset,
) -> PlanOutcome:
    """Plan moving funds from every signer's account into ``destination``.

    ``results`` must be the probe of ``signers`` (same order). For token
    assets ``destination`` is the destination token account, not its owner.
    Under ``Fixed`` the raw balance is compared with the raw scaled amount.
    """
    if len(results) != len(signers):
        raise ValueError(f"{len(results)} probe results for {len(signers)} signers")

    out = PlanOutcome()
    seen: set = set()
    for result, signer in zip(results, signers):
        owner = signer.pubkey()
        source = result.ata if result.ata is not None else owner
        if owner in seen:
            out.skip(owner, "duplicate signer")
            continue
        seen.add(owner)
        if result.error:
            out.skip(owner, result.error)
            continue
        if not result.exists:
            out.skip(owner, "no account")
            continue
        if source == destination:
            out.skip(owner, "source is the destination")
            continue

        decimals = _decimals_for(result, asset)
        balance = result.raw_balance

        if isinstance(policy, Fixed):
            amount = policy.raw(decimals)
            if balance < amount:
                out.skip(owner, f"insufficient balance ({to_ui(balance, decimals)} < {policy.amount})")
                continue
            action = Action.TRANSFER_ONLY
        elif asset.is_native:
            amount = balance
            if amount == 0:
                out.skip(owner, "zero balance")
                continue
            action = Action.TRANSFER_ONLY
        else:
            amount = balance
            action = Action.TRANSFER_AND_CLOSE if amount > 0 else Action.CLOSE_ONLY

        transfer_ix = None
        close_ix = None
        if action.transfers:
            if asset.is_native:
                transfer_ix = build_transfer_ix(owner, destination, amount)
            else:
                transfer_ix = build_token_transfer_ix(source, destination, owner, amount, asset.token_program_id)
        if action.closes:
            close_ix = build_close_token_account_ix(source, owner, owner, asset.token_program_id)

        out.operations.append(
            PlannedOperation(
                address=owner,
                action=action,
                raw_amount=amount,
                ui_amount=to_ui(amount, decimals),
                signer=signer,
                transfer_ix=transfer_ix,
                close_ix=close_ix,
            )
        )
    return out


def plan_allocation(payer: Pubkey, targets: Sequence[Pubkey], lamports: int) -> PlanOutcome:
    """One native transfer of ``lamports`` from ``payer`` to each target."""
    out = PlanOutcome()
    for target in targets:
        if target == payer:
            out.skip(target, "target is the payer")
            continue
        out.operations.append(
            PlannedOperation(
                address=target,
                action=Action.TRANSFER_ONLY,
                raw_amount=lamports,
                ui_amount=to_ui(lamports, NATIVE_DECIMALS),
                transfer_ix=build_transfer_ix(payer, target, lamports),
            )
        )
    return out


def plan_mint(
    results: Sequence[AccountProbeResult],
    payer: Pubkey,
    asset: Asset,
    raw_amount: int,
    decimals: int,
) -> PlanOutcome:
    """Mint ``raw_amount`` to each probed owner, creating missing token accounts inline."""
    out = PlanOutcome()
    for result in results:
        if result.error:
            out.skip(result.address, result.error)
            continue
        owner = result.address
        create_ix = None
        action = Action.MINT
        if not result.exists:
            create_ix = build_create_ata_ix(payer, owner, asset.mint, asset.token_program_id)
            action = Action.CREATE_AND_MINT
        out.operations.append(
            PlannedOperation(
                address=owner,
                action=action,
                raw_amount=raw_amount,
                ui_amount=to_ui(raw_amount, decimals),
                create_ix=create_ix,
                mint_ix=build_mint_to_ix(asset.mint, result.ata, payer, raw_amount, asset.token_program_id),
            )
        )
    return out
