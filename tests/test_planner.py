from decimal import Decimal

import pytest
from solders.keypair import Keypair
from solders.system_program import decode_transfer

from sol_batch.instructions import build_transfer_ix, get_associated_token_address
from sol_batch.planner import ALL, Action, Fixed, PlannedOperation, plan_allocation, plan_collect, plan_mint, to_raw
from sol_batch.probe import NATIVE, Asset, probe


def test_to_raw_uses_exact_integer_scaling():
    assert to_raw(5, 6) == 5_000_000
    assert to_raw("0.1", 9) == 100_000_000
    assert to_raw(0.3, 9) == 300_000_000
    assert to_raw(Decimal("1.000000001"), 9) == 1_000_000_001
    with pytest.raises(ValueError):
        to_raw("0.0000001", 6)
    with pytest.raises(ValueError):
        to_raw("abc", 6)


def test_fixed_skips_accounts_below_amount(rpc, mint):
    poor, rich = Keypair(), Keypair()
    rpc.set_token(mint, poor.pubkey(), 3_000_000, 6)
    rpc.set_token(mint, rich.pubkey(), 5_000_000, 6)
    asset = Asset.token(mint)
    dest = get_associated_token_address(Keypair().pubkey(), mint)

    results = probe(rpc, [poor.pubkey(), rich.pubkey()], asset)
    outcome = plan_collect(results, [poor, rich], Fixed(5), dest, asset)

    assert [op.address for op in outcome.operations] == [rich.pubkey()]
    (op,) = outcome.operations
    assert op.action is Action.TRANSFER_ONLY
    assert op.raw_amount == 5_000_000
    assert op.transfer_ix.data == bytes([3]) + (5_000_000).to_bytes(8, "little")
    assert op.close_ix is None
    assert str(poor.pubkey()) in outcome.skipped


def test_all_closes_empty_token_account(rpc, mint):
    empty, full = Keypair(), Keypair()
    rpc.set_token(mint, empty.pubkey(), 0, 6)
    rpc.set_token(mint, full.pubkey(), 42, 6)
    asset = Asset.token(mint)
    dest = get_associated_token_address(Keypair().pubkey(), mint)

    results = probe(rpc, [empty.pubkey(), full.pubkey()], asset)
    ops = plan_collect(results, [empty, full], ALL, dest, asset).operations

    assert [op.action for op in ops] == [Action.CLOSE_ONLY, Action.TRANSFER_AND_CLOSE]
    assert ops[0].transfer_ix is None and ops[0].close_ix is not None
    assert ops[1].raw_amount == 42
    # rent goes back to the source wallet
    assert ops[0].close_ix.accounts[1].pubkey == empty.pubkey()


def test_missing_token_account_is_skipped_under_all(rpc, mint):
    ghost = Keypair()
    asset = Asset.token(mint)
    results = probe(rpc, [ghost.pubkey()], asset)

    outcome = plan_collect(results, [ghost], ALL, Keypair().pubkey(), asset)

    assert outcome.operations == []
    assert outcome.skipped[str(ghost.pubkey())] == "no account"


def test_native_all_transfers_full_balance_and_skips_zero(rpc):
    a, b = Keypair(), Keypair()
    rpc.set_native(a.pubkey(), 123_456)
    rpc.set_native(b.pubkey(), 0)
    dest = Keypair().pubkey()

    results = probe(rpc, [a.pubkey(), b.pubkey()], NATIVE)
    ops = plan_collect(results, [a, b], ALL, dest, NATIVE).operations

    assert len(ops) == 1
    params = decode_transfer(ops[0].transfer_ix)
    assert params["lamports"] == 123_456
    assert params["to_pubkey"] == dest


def test_native_fixed_compares_raw_lamports(rpc):
    a = Keypair()
    rpc.set_native(a.pubkey(), 100_000_000)
    results = probe(rpc, [a.pubkey()], NATIVE)

    assert plan_collect(results, [a], Fixed("0.1"), Keypair().pubkey(), NATIVE).operations
    assert not plan_collect(results, [a], Fixed("0.100000001"), Keypair().pubkey(), NATIVE).operations


def test_duplicate_signer_and_destination_are_skipped(rpc):
    a = Keypair()
    rpc.set_native(a.pubkey(), 10)
    results = probe(rpc, [a.pubkey(), a.pubkey()], NATIVE)

    outcome = plan_collect(results, [a, a], ALL, Keypair().pubkey(), NATIVE)
    assert len(outcome.operations) == 1

    outcome = plan_collect(results[:1], [a], ALL, a.pubkey(), NATIVE)
    assert outcome.operations == []


def test_plan_allocation_uses_fee_payer_authority():
    payer = Keypair().pubkey()
    targets = [Keypair().pubkey() for _ in range(3)]

    ops = plan_allocation(payer, targets + [payer], 1_000).operations

    assert [op.address for op in ops] == targets
    assert all(op.signer is None for op in ops)


def test_plan_mint_creates_missing_accounts(rpc, mint):
    payer = Keypair().pubkey()
    has, lacks = Keypair().pubkey(), Keypair().pubkey()
    rpc.set_token(mint, has, 0, 2)
    asset = Asset.token(mint)

    ops = plan_mint(probe(rpc, [has, lacks], asset), payer, asset, 10_000, 2).operations

    assert [op.action for op in ops] == [Action.MINT, Action.CREATE_AND_MINT]
    assert ops[1].create_ix is not None
    assert ops[0].ui_amount == 100.0
    assert all(op.transfer_ix is None for op in ops)
    assert ops[0].mint_ix.data == bytes([7]) + (10_000).to_bytes(8, "little")


def test_operation_rejects_inconsistent_instructions():
    with pytest.raises(ValueError):
        PlannedOperation(address=Keypair().pubkey(), action=Action.TRANSFER_ONLY, raw_amount=1, ui_amount=1.0)
    with pytest.raises(ValueError):
        PlannedOperation(address=Keypair().pubkey(), action=Action.SKIP, raw_amount=0, ui_amount=0.0)


def test_mint_operation_carries_mint_instruction_not_transfer():
    target = Keypair().pubkey()
    ix = build_transfer_ix(Keypair().pubkey(), target, 1)
    with pytest.raises(ValueError):
        PlannedOperation(address=target, action=Action.MINT, raw_amount=1, ui_amount=1.0, transfer_ix=ix)
    op = PlannedOperation(address=target, action=Action.MINT, raw_amount=1, ui_amount=1.0, mint_ix=ix)
    assert not op.action.transfers and op.action.mints
