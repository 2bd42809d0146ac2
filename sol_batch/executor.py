"""Sign, submit and confirm batches one at a time.

A failed submission or confirmation is ambiguous: the transaction may still
have landed. Failures are recorded on the ``ExecutionResult``, printed as a
warning and the run moves on; batches are never resubmitted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from rich.console import Console
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from sol_batch.batcher import Batch
from sol_batch.errors import PreconditionError
from sol_batch.instructions import LAMPORTS_PER_SOL
from sol_batch.planner import AmountPolicy, Fixed
from sol_batch.report import print_batch_summary
from sol_batch.rpc import RpcClient

# 0.001 SOL
MIN_FEE_PAYER_RESERVE = 1_000_000


@dataclass(frozen=True)
class ExecutionResult:
    batch: Batch
    signature: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def check_amount(policy: AmountPolicy) -> None:
    if isinstance(policy, Fixed) and policy.amount <= 0:
        raise PreconditionError(f"amount must be greater than 0 (got {policy.amount})")


def check_fee_payer(rpc: RpcClient, fee_payer: Keypair, reserve: int = MIN_FEE_PAYER_RESERVE) -> int:
    balance = rpc.get_balance(fee_payer.pubkey())
    if balance < reserve:
        raise PreconditionError(
            f"fee payer {fee_payer.pubkey()} balance {balance} lamports is below the "
            f"{reserve / LAMPORTS_PER_SOL} SOL reserve"
        )
    return balance


def build_transaction(
    batch: Batch,
    fee_payer: Keypair,
    blockhash: Hash,
    create_destination: Optional[Instruction] = None,
) -> Transaction:
    msg = Message.new_with_blockhash(batch.instructions(create_destination), fee_payer.pubkey(), blockhash)
    signers = [fee_payer] + [s for s in batch.signers() if s.pubkey() != fee_payer.pubkey()]
    tx = Transaction.new_unsigned(msg)
    tx.sign(signers, blockhash)
    return tx


def submit(
    rpc: RpcClient,
    instructions: Sequence[Instruction],
    fee_payer: Keypair,
    signers: Sequence[Keypair] = (),
) -> str:
    """Sign, send and confirm one transaction outside of any batch; errors propagate."""
    if not instructions:
        raise ValueError("No instructions to send")
    blockhash = rpc.get_latest_blockhash()
    msg = Message.new_with_blockhash(list(instructions), fee_payer.pubkey(), blockhash)
    tx = Transaction.new_unsigned(msg)
    tx.sign([fee_payer] + [s for s in signers if s.pubkey() != fee_payer.pubkey()], blockhash)
    signature = rpc.send_transaction(tx)
    rpc.confirm_signature(signature)
    return signature


def execute(
    rpc: RpcClient,
    batches: Sequence[Batch],
    fee_payer: Keypair,
    *,
    create_destination: Optional[Instruction] = None,
    sleep_ms: int = 0,
    console: Optional[Console] = None,
) -> List[ExecutionResult]:
    """Submit ``batches`` in order; one result per batch, never raises for a batch failure.

    ``create_destination`` goes into the first transaction that reaches
    ``sendTransaction``; a batch that fails before that leaves it pending.
    """
    results: List[ExecutionResult] = []
    pending_create = create_destination
    for idx, batch in enumerate(batches, start=1):
        create_ix = pending_create
        if create_ix is not None:
            print(f"[{idx}/{len(batches)}] creating destination token account")

        signature: Optional[str] = None
        try:
            blockhash = rpc.get_latest_blockhash()
            tx = build_transaction(batch, fee_payer, blockhash, create_ix)
            # once posted, the create may have landed; it is not attached again
            pending_create = None
            signature = rpc.send_transaction(tx)
            rpc.confirm_signature(signature)
        except Exception as exc:
            print(
                f"WARNING: [{idx}/{len(batches)}] maybe failed for {', '.join(batch.addresses)}; "
                f"please verify via a block explorer{f' (tx {signature})' if signature else ''}: {exc}"
            )
            results.append(ExecutionResult(batch=batch, signature=signature, error=str(exc)))
        else:
            print(f"[{idx}/{len(batches)}] tx {signature}")
            print_batch_summary(batch, signature, console=console)
            results.append(ExecutionResult(batch=batch, signature=signature))

        if sleep_ms > 0 and idx < len(batches):
            time.sleep(sleep_ms / 1000)
    return results
