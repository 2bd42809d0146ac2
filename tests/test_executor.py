import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from sol_batch.batcher import batch
from sol_batch.errors import PreconditionError
from sol_batch.executor import MIN_FEE_PAYER_RESERVE, build_transaction, check_amount, check_fee_payer, execute
from sol_batch.instructions import ASSOCIATED_TOKEN_PROGRAM_ID, build_create_ata_ix, build_transfer_ix
from sol_batch.planner import ALL, Action, Fixed, PlannedOperation


def _ops(n, dest):
    out = []
    for _ in range(n):
        kp = Keypair()
        out.append(
            PlannedOperation(
                address=kp.pubkey(),
                action=Action.TRANSFER_ONLY,
                raw_amount=1_000,
                ui_amount=0.000001,
                signer=kp,
                transfer_ix=build_transfer_ix(kp.pubkey(), dest, 1_000),
            )
        )
    return out


def _program_ids(tx):
    keys = tx.message.account_keys
    return [keys[ix.program_id_index] for ix in tx.message.instructions]


def test_transaction_signed_by_payer_and_sources(payer):
    (bt,) = batch(_ops(3, payer.pubkey()), 5)

    tx = build_transaction(bt, payer, Hash.default())

    assert tx.message.account_keys[0] == payer.pubkey()
    assert tx.message.header.num_required_signatures == 4
    assert len(tx.signatures) == 4
    tx.verify()


def test_payer_as_source_signs_once(payer):
    op = PlannedOperation(
        address=payer.pubkey(),
        action=Action.TRANSFER_ONLY,
        raw_amount=1,
        ui_amount=1e-9,
        signer=payer,
        transfer_ix=build_transfer_ix(payer.pubkey(), Keypair().pubkey(), 1),
    )
    tx = build_transaction(batch([op], 5)[0], payer, Hash.default())
    assert tx.message.header.num_required_signatures == 1


def test_failed_batch_does_not_stop_the_run(rpc, payer):
    batches = batch(_ops(6, payer.pubkey()), 2)
    rpc.fail_sends = {2}

    results = execute(rpc, batches, payer)

    assert len(results) == 3
    assert [r.ok for r in results] == [True, False, True]
    assert results[0].signature == "sig1"
    assert results[1].signature is None
    assert "connection reset" in results[1].error
    assert results[1].batch is batches[1]
    assert results[2].signature == "sig3"
    assert rpc.calls.count("sendTransaction") == 3


def test_confirmation_timeout_keeps_signature(rpc, payer, capsys):
    batches = batch(_ops(2, payer.pubkey()), 1)
    rpc.fail_confirms = {1}

    results = execute(rpc, batches, payer)

    assert results[0].signature == "sig1"
    assert not results[0].ok
    assert results[1].ok
    out = capsys.readouterr().out
    assert "WARNING" in out
    assert "block explorer" in out
    assert str(batches[0].operations[0].address) in out


def test_create_destination_goes_into_first_transaction_only(rpc, payer):
    batches = batch(_ops(9, payer.pubkey()), 3)
    create = build_create_ata_ix(payer.pubkey(), Keypair().pubkey(), Keypair().pubkey())

    execute(rpc, batches, payer, create_destination=create)

    per_tx = [_program_ids(tx).count(ASSOCIATED_TOKEN_PROGRAM_ID) for tx in rpc.sent]
    assert per_tx == [1, 0, 0]
    assert _program_ids(rpc.sent[0])[0] == ASSOCIATED_TOKEN_PROGRAM_ID


def test_create_destination_not_repeated_after_failed_first_batch(rpc, payer):
    batches = batch(_ops(4, payer.pubkey()), 2)
    rpc.fail_sends = {1}
    create = build_create_ata_ix(payer.pubkey(), Keypair().pubkey(), Keypair().pubkey())

    execute(rpc, batches, payer, create_destination=create)

    assert sum(_program_ids(tx).count(ASSOCIATED_TOKEN_PROGRAM_ID) for tx in rpc.sent) == 1


def test_create_destination_waits_for_first_submitted_batch(rpc, payer):
    batches = batch(_ops(4, payer.pubkey()), 2)
    rpc.fail_blockhashes = {1}
    create = build_create_ata_ix(payer.pubkey(), Keypair().pubkey(), Keypair().pubkey())

    results = execute(rpc, batches, payer, create_destination=create)

    assert [r.ok for r in results] == [False, True]
    assert results[0].signature is None
    assert "node is behind" in results[0].error
    (tx,) = rpc.sent
    assert _program_ids(tx).count(ASSOCIATED_TOKEN_PROGRAM_ID) == 1
    assert _program_ids(tx)[0] == ASSOCIATED_TOKEN_PROGRAM_ID


def test_fresh_blockhash_per_batch(rpc, payer):
    execute(rpc, batch(_ops(4, payer.pubkey()), 1), payer)
    assert rpc.calls.count("getLatestBlockhash") == 4


def test_amount_precondition():
    check_amount(ALL)
    check_amount(Fixed("0.5"))
    for bad in (0, -1, "0"):
        with pytest.raises(PreconditionError):
            check_amount(Fixed(bad))


def test_fee_payer_reserve(rpc):
    kp = Keypair()
    rpc.set_native(kp.pubkey(), MIN_FEE_PAYER_RESERVE - 1)
    with pytest.raises(PreconditionError):
        check_fee_payer(rpc, kp)

    rpc.set_native(kp.pubkey(), MIN_FEE_PAYER_RESERVE)
    assert check_fee_payer(rpc, kp) == MIN_FEE_PAYER_RESERVE
