from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from sol_batch.errors import RpcError
from sol_batch.instructions import TOKEN_PROGRAM_ID, get_associated_token_address

SYSTEM_OWNER = "11111111111111111111111111111111"


def native_account(lamports: int) -> dict:
    return {
        "lamports": lamports,
        "owner": SYSTEM_OWNER,
        "data": ["", "base64"],
        "executable": False,
        "space": 0,
    }


def token_account(mint: Pubkey, owner: Pubkey, raw: int, decimals: int, lamports: int = 2_039_280) -> dict:
    return {
        "lamports": lamports,
        "owner": str(TOKEN_PROGRAM_ID),
        "executable": False,
        "space": 165,
        "data": {
            "program": "spl-token",
            "space": 165,
            "parsed": {
                "type": "account",
                "info": {
                    "mint": str(mint),
                    "owner": str(owner),
                    "state": "initialized",
                    "tokenAmount": {
                        "amount": str(raw),
                        "decimals": decimals,
                        "uiAmount": raw / 10**decimals,
                        "uiAmountString": str(raw / 10**decimals),
                    },
                },
            },
        },
    }


def mint_account(decimals: int, authority: Optional[Pubkey], owner: Pubkey = TOKEN_PROGRAM_ID) -> dict:
    return {
        "lamports": 1_461_600,
        "owner": str(owner),
        "executable": False,
        "space": 82,
        "data": {
            "program": "spl-token",
            "space": 82,
            "parsed": {
                "type": "mint",
                "info": {
                    "decimals": decimals,
                    "freezeAuthority": None,
                    "isInitialized": True,
                    "mintAuthority": str(authority) if authority else None,
                    "supply": "1000000000",
                },
            },
        },
    }


class FakeRpc:
    """In-memory stand-in for ``RpcClient`` that records every call."""

    url = "fake://rpc"

    def __init__(self) -> None:
        self.accounts: Dict[str, dict] = {}
        self.calls: List[str] = []
        self.sent: List[Transaction] = []
        self.fail_sends: set = set()
        self.fail_confirms: set = set()
        self.fail_blockhashes: set = set()

    # -- setup helpers --
    def set_native(self, pubkey: Pubkey, lamports: int) -> None:
        self.accounts[str(pubkey)] = native_account(lamports)

    def set_token(self, mint: Pubkey, owner: Pubkey, raw: int, decimals: int) -> Pubkey:
        ata = get_associated_token_address(owner, mint)
        self.accounts[str(ata)] = token_account(mint, owner, raw, decimals)
        return ata

    # -- RpcClient surface --
    def get_balance(self, pubkey) -> int:
        self.calls.append("getBalance")
        acc = self.accounts.get(str(pubkey))
        return acc["lamports"] if acc else 0

    def get_account_info(self, pubkey, *, encoding: str = "jsonParsed") -> Optional[dict]:
        self.calls.append("getAccountInfo")
        return self.accounts.get(str(pubkey))

    def get_multiple_accounts(self, pubkeys: Iterable, *, encoding: str = "jsonParsed") -> List[Optional[dict]]:
        self.calls.append("getMultipleAccounts")
        return [self.accounts.get(str(pk)) for pk in pubkeys]

    def get_minimum_balance_for_rent_exemption(self, data_len: int) -> int:
        self.calls.append("getMinimumBalanceForRentExemption")
        return (data_len + 128) * 6_960

    def get_latest_blockhash(self) -> Hash:
        self.calls.append("getLatestBlockhash")
        if self.calls.count("getLatestBlockhash") in self.fail_blockhashes:
            raise RpcError("getLatestBlockhash", "node is behind")
        return Hash.default()

    def send_transaction(self, tx: Transaction, *, skip_preflight: bool = False) -> str:
        self.calls.append("sendTransaction")
        self.sent.append(tx)
        n = len(self.sent)
        if n in self.fail_sends:
            raise RpcError("sendTransaction", "connection reset")
        return f"sig{n}"

    def confirm_signature(self, sig: str) -> None:
        self.calls.append("getSignatureStatuses")
        if int(sig[3:]) in self.fail_confirms:
            raise TimeoutError(f"Timed out waiting for confirmation: {sig}")


@pytest.fixture
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def payer(rpc: FakeRpc) -> Keypair:
    kp = Keypair()
    rpc.set_native(kp.pubkey(), 5_000_000_000)
    return kp


@pytest.fixture
def mint() -> Pubkey:
    return Keypair().pubkey()
