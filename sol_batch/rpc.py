"""Minimal Solana JSON-RPC client.

One ``RpcClient`` is created per run and handed to every component, so tests
can swap in a fake with the same surface.
"""

from __future__ import annotations

import base64
import json
import time
import urllib.error
import urllib.request
from typing import Any, List, Optional, Sequence, Union

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from sol_batch.errors import RpcError

PubkeyLike = Union[Pubkey, str]

# Upper bound on getSignatureStatuses polling; not configurable by callers.
CONFIRM_TIMEOUT_SEC = 60


class RpcClient:
    def __init__(
        self,
        url: str,
        *,
        commitment: str = "confirmed",
        timeout: float = 30,
        max_retries: int = 8,
    ) -> None:
        self.url = url
        self.commitment = commitment
        self.timeout = timeout
        self.max_retries = max_retries

    def __repr__(self) -> str:
        return f"RpcClient({self.url!r})"

    def call(self, method: str, params: list, *, max_retries: Optional[int] = None) -> Any:
        """Raw JSON-RPC call with basic 429/backoff handling. Returns ``result``."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(self.url, data=data, headers={"Content-Type": "application/json"})

        retries = self.max_retries if max_retries is None else max_retries
        last_err: Exception | None = None
        for attempt in range(1, retries + 1):
            try:
                with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                    out = json.loads(resp.read().decode("utf-8"))
            except urllib.error.HTTPError as e:
                last_err = e
                if e.code == 429:
                    time.sleep(min(2 * attempt, 10))
                    continue
                body = e.read().decode("utf-8", errors="replace")
                raise RpcError(method, f"HTTPError {e.code} {e.reason}: {body}") from e
            except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
                last_err = e
                time.sleep(min(1.25 * attempt, 8))
                continue
            if "error" in out:
                raise RpcError(method, f"RPC error: {out['error']}")
            return out.get("result")

        raise RpcError(method, f"failed after {retries} attempts (last={last_err})")

    # ---------------- reads ----------------
    def get_balance(self, pubkey: PubkeyLike) -> int:
        result = self.call("getBalance", [str(pubkey), {"commitment": self.commitment}])
        return int((result or {}).get("value", 0) or 0)

    def get_account_info(self, pubkey: PubkeyLike, *, encoding: str = "jsonParsed") -> Optional[dict]:
        result = self.call(
            "getAccountInfo",
            [str(pubkey), {"encoding": encoding, "commitment": self.commitment}],
        )
        return (result or {}).get("value")

    def get_multiple_accounts(
        self,
        pubkeys: Sequence[PubkeyLike],
        *,
        encoding: str = "jsonParsed",
    ) -> List[Optional[dict]]:
        """One ``getMultipleAccounts`` round-trip; ``None`` entries for missing accounts."""
        result = self.call(
            "getMultipleAccounts",
            [[str(pk) for pk in pubkeys], {"encoding": encoding, "commitment": self.commitment}],
        )
        values = (result or {}).get("value") or []
        if len(values) != len(pubkeys):
            raise RpcError(
                "getMultipleAccounts",
                f"expected {len(pubkeys)} entries, got {len(values)}",
            )
        return list(values)

    def get_minimum_balance_for_rent_exemption(self, data_len: int) -> int:
        result = self.call("getMinimumBalanceForRentExemption", [int(data_len)])
        return int(result or 0)

    def get_latest_blockhash(self) -> Hash:
        result = self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        bh = (result or {}).get("value", {}).get("blockhash")
        if not bh:
            raise RpcError("getLatestBlockhash", f"no blockhash in response: {result}")
        return Hash.from_string(str(bh))

    # ---------------- writes ----------------
    def send_transaction(self, tx: Transaction, *, skip_preflight: bool = False) -> str:
        # A signed transaction is never re-posted here: a lost response does not
        # mean the transaction was dropped.
        tx_b64 = base64.b64encode(bytes(tx)).decode("utf-8")
        sig = self.call(
            "sendTransaction",
            [
                tx_b64,
                {
                    "encoding": "base64",
                    "skipPreflight": bool(skip_preflight),
                    "preflightCommitment": self.commitment,
                },
            ],
            max_retries=1,
        )
        if not sig:
            raise RpcError("sendTransaction", "no signature returned")
        return str(sig)

    def confirm_signature(self, sig: str) -> None:
        deadline = time.time() + CONFIRM_TIMEOUT_SEC
        while time.time() < deadline:
            result = self.call(
                "getSignatureStatuses",
                [[sig], {"searchTransactionHistory": True}],
            )
            val = ((result or {}).get("value") or [None])[0]
            if val is None:
                time.sleep(0.8)
                continue
            err = val.get("err")
            if err:
                raise RpcError("getSignatureStatuses", f"transaction {sig} failed: {err}")
            status = (val.get("confirmationStatus") or "").lower()
            if status in {"confirmed", "finalized"}:
                return
            time.sleep(0.5)
        raise TimeoutError(f"Timed out waiting for confirmation: {sig}")

    def send_and_confirm(self, tx: Transaction) -> str:
        sig = self.send_transaction(tx)
        self.confirm_signature(sig)
        return sig
