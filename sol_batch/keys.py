"""Keypair loading: mnemonic-derived wallets, base58 secrets, keygen JSON files."""

from __future__ import annotations

import gzip
import hashlib
import json
import unicodedata
from pathlib import Path
from typing import List, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey

# Phantom / Solana CLI account path; every level is hardened for ed25519.
DERIVATION_PATH = "m/44'/501'/{index}'/0'"

_MNEMONIC_WORD_COUNTS = {12, 15, 18, 21, 24}


def parse_pubkey(value: Union[str, Pubkey]) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as e:
        raise ValueError(f"Invalid address: {value!r}") from e


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """BIP-39 seed: PBKDF2-HMAC-SHA512, 2048 rounds, salt ``"mnemonic" + passphrase``."""
    words = mnemonic.split()
    if len(words) not in _MNEMONIC_WORD_COUNTS:
        raise ValueError(f"mnemonic has {len(words)} words (expected 12/15/18/21/24)")
    phrase = unicodedata.normalize("NFKD", " ".join(words))
    salt = unicodedata.normalize("NFKD", "mnemonic" + passphrase)
    return hashlib.pbkdf2_hmac("sha512", phrase.encode("utf-8"), salt.encode("utf-8"), 2048)


def keypair_from_mnemonic(mnemonic: str, index: int, passphrase: str = "") -> Keypair:
    if index < 0:
        raise ValueError(f"account index must be >= 0 (got {index})")
    seed = mnemonic_to_seed(mnemonic, passphrase)
    return Keypair.from_seed_and_derivation_path(seed, DERIVATION_PATH.format(index=index))


def keypairs_from_mnemonic(mnemonic: str, count: int, start: int = 0, passphrase: str = "") -> List[Keypair]:
    # PBKDF2 is the slow part; run it once for the whole range.
    seed = mnemonic_to_seed(mnemonic, passphrase)
    return [
        Keypair.from_seed_and_derivation_path(seed, DERIVATION_PATH.format(index=i))
        for i in range(start, start + count)
    ]


def keypair_from_base58(secret: str) -> Keypair:
    try:
        return Keypair.from_base58_string(secret.strip())
    except ValueError as e:
        raise ValueError("Invalid base58 secret key") from e


def load_keypair_any(path: Path) -> Keypair:
    """Load a solana-keygen style keypair from .json or .json.gz.

    Supports:
      - JSON array of 64 ints (Solana CLI default)
      - base58 string of 64 raw bytes
    """
    if path.name.endswith(".json.gz") or path.suffix == ".gz":
        with gzip.open(path, "rt", encoding="utf-8") as fh:
            payload = json.load(fh)
    else:
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)

    if isinstance(payload, list):
        raw = bytes(int(x) for x in payload)
        if len(raw) != 64:
            raise ValueError(f"Keypair must be 64 bytes (got {len(raw)}): {path}")
        return Keypair.from_bytes(raw)
    if isinstance(payload, str):
        return keypair_from_base58(payload)
    raise ValueError(f"Unsupported keypair format: {path}")
