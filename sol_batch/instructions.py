"""Instruction builders for the system, SPL Token and Associated Token Account programs."""

from __future__ import annotations

from typing import Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from solders.system_program import CreateAccountParams, TransferParams, create_account, transfer

# ---------------- Program IDs / constants ----------------
LAMPORTS_PER_SOL = 1_000_000_000
NATIVE_DECIMALS = 9

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

# SPL Token instruction indexes
TRANSFER_IX = 3
MINT_TO_IX = 7
CLOSE_ACCOUNT_IX = 9
INITIALIZE_MINT2_IX = 20

MINT_SIZE = 82

U64_MAX = 2**64 - 1


def _u64(amount: int) -> bytes:
    amount = int(amount)
    if not 0 <= amount <= U64_MAX:
        raise ValueError(f"amount out of u64 range: {amount}")
    return amount.to_bytes(8, "little")


def get_associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """Derive the associated token account of ``owner`` for ``mint``. Pure, no RPC."""
    return Pubkey.find_program_address(
        [bytes(owner), bytes(token_program_id), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )[0]


def build_transfer_ix(from_pubkey: Pubkey, to_pubkey: Pubkey, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=from_pubkey, to_pubkey=to_pubkey, lamports=int(lamports)))


def build_token_transfer_ix(
    source: Pubkey,
    destination: Pubkey,
    owner: Pubkey,
    amount: int,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=token_program_id,
        accounts=[
            AccountMeta(pubkey=source, is_signer=False, is_writable=True),
            AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
        ],
        data=bytes([TRANSFER_IX]) + _u64(amount),
    )


def build_close_token_account_ix(
    token_account: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=token_program_id,
        accounts=[
            AccountMeta(pubkey=token_account, is_signer=False, is_writable=True),
            AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        ],
        data=bytes([CLOSE_ACCOUNT_IX]),
    )


def build_mint_to_ix(
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        program_id=token_program_id,
        accounts=[
            AccountMeta(pubkey=mint, is_signer=False, is_writable=True),
            AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
        ],
        data=bytes([MINT_TO_IX]) + _u64(amount),
    )


def build_create_ata_ix(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    ata = get_associated_token_address(owner, mint, token_program_id)
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        accounts=[
            AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
            AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=token_program_id, is_signer=False, is_writable=False),
        ],
        data=b"",
    )


def build_create_account_ix(
    payer: Pubkey,
    new_account: Pubkey,
    lamports: int,
    space: int,
    owner: Pubkey,
) -> Instruction:
    return create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=new_account,
            lamports=int(lamports),
            space=int(space),
            owner=owner,
        )
    )


def build_initialize_mint2_ix(
    mint: Pubkey,
    decimals: int,
    mint_authority: Pubkey,
    freeze_authority: Optional[Pubkey] = None,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """InitializeMint2: no rent sysvar account, the mint is the only account."""
    if not 0 <= int(decimals) <= 255:
        raise ValueError(f"decimals out of range: {decimals}")
    data = bytes([INITIALIZE_MINT2_IX, int(decimals)]) + bytes(mint_authority)
    data += bytes([1]) + bytes(freeze_authority) if freeze_authority is not None else bytes([0])
    return Instruction(
        program_id=token_program_id,
        accounts=[AccountMeta(pubkey=mint, is_signer=False, is_writable=True)],
        data=data,
    )
