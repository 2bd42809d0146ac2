"""Account state probing.

Addresses are looked up with ``getMultipleAccounts`` in chunks of
``MAX_MULTIPLE_ACCOUNTS``; raw payloads are decoded into ``NativeAccount`` or
``TokenAccount`` right here so nothing downstream touches untyped JSON.
Results always line up one-to-one with the input addresses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey

from sol_batch.chunk import chunk
from sol_batch.errors import AccountDecodeError
from sol_batch.instructions import TOKEN_PROGRAM_ID, get_associated_token_address
from sol_batch.rpc import PubkeyLike, RpcClient

MAX_MULTIPLE_ACCOUNTS = 50

_TOKEN_PROGRAMS = {"spl-token", "spl-token-2022"}


@dataclass(frozen=True)
class Asset:
    """What is being moved: native SOL (``mint is None``) or one SPL token mint."""

    mint: Optional[Pubkey] = None
    token_program_id: Pubkey = TOKEN_PROGRAM_ID

    @property
    def is_native(self) -> bool:
        return self.mint is None

    @classmethod
    def token(cls, mint: PubkeyLike, token_program_id: Pubkey = TOKEN_PROGRAM_ID) -> "Asset":
        if isinstance(mint, str):
            mint = Pubkey.from_string(mint)
        return cls(mint=mint, token_program_id=token_program_id)


NATIVE = Asset()


@dataclass(frozen=True)
class TokenAmount:
    raw: int
    ui_amount: float
    decimals: int


@dataclass(frozen=True)
class NativeAccount:
    lamports: int


@dataclass(frozen=True)
class TokenAccount:
    lamports: int
    mint: str
    owner: str
    amount: TokenAmount


DecodedAccount = Union[NativeAccount, TokenAccount]


@dataclass(frozen=True)
class AccountProbeResult:
    address: Union[Pubkey, str]
    ata: Optional[Pubkey] = None
    account: Optional[DecodedAccount] = None
    error: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.account is not None

    @property
    def lamports(self) -> int:
        return self.account.lamports if self.account is not None else 0

    @property
    def token_amount(self) -> Optional[TokenAmount]:
        if isinstance(self.account, TokenAccount):
            return self.account.amount
        return None

    @property
    def raw_balance(self) -> int:
        """Lamports for native probes, raw token units for token probes."""
        if isinstance(self.account, TokenAccount):
            return self.account.amount.raw
        return self.lamports


def _require_int(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise AccountDecodeError(f"{what}: expected integer, got {value!r}")
    try:
        out = int(value)
    except ValueError as e:
        raise AccountDecodeError(f"{what}: expected integer, got {value!r}") from e
    if out < 0:
        raise AccountDecodeError(f"{what}: negative value {out}")
    return out


def decode_account(value: dict, asset: Asset) -> DecodedAccount:
    """Decode one ``getMultipleAccounts``/``getAccountInfo`` entry (jsonParsed encoding)."""
    if not isinstance(value, dict):
        raise AccountDecodeError(f"unexpected account payload: {value!r}")
    lamports = _require_int(value.get("lamports"), "lamports")
    if asset.is_native:
        return NativeAccount(lamports=lamports)

    data = value.get("data")
    if not isinstance(data, dict) or data.get("program") not in _TOKEN_PROGRAMS:
        raise AccountDecodeError("not a parsed SPL token account")
    parsed = data.get("parsed") or {}
    if parsed.get("type") != "account":
        raise AccountDecodeError(f"unexpected token account type: {parsed.get('type')!r}")
    info = parsed.get("info") or {}
    token_amount = info.get("tokenAmount")
    if not isinstance(token_amount, dict):
        raise AccountDecodeError("missing tokenAmount")
    mint = str(info.get("mint", ""))
    if mint and mint != str(asset.mint):
        raise AccountDecodeError(f"token account holds mint {mint}, expected {asset.mint}")
    return TokenAccount(
        lamports=lamports,
        mint=mint,
        owner=str(info.get("owner", "")),
        amount=TokenAmount(
            raw=_require_int(token_amount.get("amount"), "tokenAmount.amount"),
            ui_amount=float(token_amount.get("uiAmount") or 0),
            decimals=_require_int(token_amount.get("decimals"), "tokenAmount.decimals"),
        ),
    )


def _resolve(address: PubkeyLike, asset: Asset) -> Tuple[Pubkey, Optional[Pubkey]]:
    owner = Pubkey.from_string(address) if isinstance(address, str) else address
    if asset.is_native:
        return owner, None
    return owner, get_associated_token_address(owner, asset.mint, asset.token_program_id)


def probe(
    rpc: RpcClient,
    addresses: Sequence[PubkeyLike],
    asset: Asset = NATIVE,
    *,
    chunk_size: int = MAX_MULTIPLE_ACCOUNTS,
) -> List[AccountProbeResult]:
    """Return one ``AccountProbeResult`` per address, in input order.

    For token assets the associated token account is derived locally from
    ``(owner, mint)`` and that account is queried. Malformed addresses and
    undecodable payloads are reported on their own result, not raised.
    """
    results: List[Optional[AccountProbeResult]] = [None] * len(addresses)
    lookups: List[Tuple[int, Pubkey, Optional[Pubkey]]] = []

    for idx, address in enumerate(addresses):
        try:
            owner, ata = _resolve(address, asset)
        except ValueError as exc:
            results[idx] = AccountProbeResult(address=address, error=f"invalid address: {exc}")
            continue
        lookups.append((idx, owner, ata))

    for group in chunk(lookups, chunk_size):
        infos = rpc.get_multiple_accounts([ata if ata is not None else owner for _, owner, ata in group])
        for (idx, owner, ata), info in zip(group, infos):
            if info is None:
                results[idx] = AccountProbeResult(address=owner, ata=ata)
                continue
            try:
                account = decode_account(info, asset)
            except AccountDecodeError as exc:
                results[idx] = AccountProbeResult(address=owner, ata=ata, error=str(exc))
                continue
            results[idx] = AccountProbeResult(address=owner, ata=ata, account=account)

    return [r for r in results if r is not None]

