"""Pack planned operations into transactions.

Caps are fixed per operation shape and sit well under what the 1232-byte
packet would allow, leaving room for the fee payer signature and blockhash.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_batch.planner import Action, PlannedOperation

NATIVE_GROUP_SIZE = 20
TOKEN_GROUP_SIZE = 10
TOKEN_CLOSE_GROUP_SIZE = 5
MINT_GROUP_SIZE = 5

# Distinct signatures per transaction, fee payer included.
MAX_TX_SIGNERS = 21


def group_size_for(operations: Sequence[PlannedOperation], *, native: bool) -> int:
    """Pick the cap for a plan: the most expensive operation shape present wins."""
    sizes = [NATIVE_GROUP_SIZE if native else TOKEN_GROUP_SIZE]
    for op in operations:
        if op.action.closes:
            sizes.append(TOKEN_CLOSE_GROUP_SIZE)
        elif op.action in (Action.MINT, Action.CREATE_AND_MINT):
            sizes.append(MINT_GROUP_SIZE)
    return min(sizes)


@dataclass(frozen=True)
class Batch:
    operations: Tuple[PlannedOperation, ...]

    def __len__(self) -> int:
        return len(self.operations)

    @property
    def addresses(self) -> List[str]:
        return [str(op.address) for op in self.operations]

    def signers(self) -> List[Keypair]:
        """Distinct per-account signers, in operation order."""
        out: Dict[Pubkey, Keypair] = {}
        for op in self.operations:
            if op.signer is not None:
                out.setdefault(op.signer.pubkey(), op.signer)
        return list(out.values())

    def instructions(self, create_destination: Optional[Instruction] = None) -> List[Instruction]:
        """Instruction order: creates, then transfers/mints, then closes."""
        ixs: List[Instruction] = []
        if create_destination is not None:
            ixs.append(create_destination)
        ixs.extend(op.create_ix for op in self.operations if op.action.creates)
        ixs.extend(op.transfer_ix for op in self.operations if op.action.transfers)
        ixs.extend(op.mint_ix for op in self.operations if op.action.mints)
        ixs.extend(op.close_ix for op in self.operations if op.action.closes)
        return ixs


def batch(operations: Sequence[PlannedOperation], max_group_size: int) -> List[Batch]:
    """Group operations into batches of at most ``max_group_size``.

    Operations sharing a signer always land in the same batch; otherwise the
    planner's order is kept.
    """
    if max_group_size <= 0:
        raise ValueError(f"group size must be positive (got {max_group_size})")
    if max_group_size > MAX_TX_SIGNERS - 1:
        raise ValueError(f"group size {max_group_size} exceeds the {MAX_TX_SIGNERS - 1} signer slots per transaction")

    units: List[List[PlannedOperation]] = []
    by_signer: Dict[Pubkey, List[PlannedOperation]] = {}
    for op in operations:
        key = op.signer_key
        if key is None:
            units.append([op])
        elif key in by_signer:
            by_signer[key].append(op)
        else:
            by_signer[key] = [op]
            units.append(by_signer[key])

    batches: List[Batch] = []
    current: List[PlannedOperation] = []
    for unit in units:
        if len(unit) > max_group_size:
            raise ValueError(f"{len(unit)} operations for signer {unit[0].address} exceed group size {max_group_size}")
        if len(current) + len(unit) > max_group_size:
            batches.append(Batch(tuple(current)))
            current = []
        current.extend(unit)
    if current:
        batches.append(Batch(tuple(current)))
    return batches
