"""config.toml + environment.

    [wallet]
    mnemonic = "..."      # or env MNEMONIC
    count = 20            # wallets derived from the mnemonic
    keys = ["base58..."]  # extra wallets by secret key

    [network]
    rpc = ["https://api.devnet.solana.com"]
    sleep = 1000          # ms between transactions
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from solders.keypair import Keypair

from sol_batch.errors import ConfigError
from sol_batch.keys import keypair_from_base58, keypairs_from_mnemonic

DEFAULT_CONFIG_PATH = "config.toml"
PUBLIC_MAINNET_RPC = "https://api.mainnet-beta.solana.com"


@dataclass(frozen=True)
class WalletConfig:
    mnemonic: str = ""
    count: int = 0
    keys: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NetworkConfig:
    rpc: Tuple[str, ...] = ()
    sleep: int = 0


@dataclass(frozen=True)
class Config:
    wallet: WalletConfig = field(default_factory=WalletConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)

    def wallets(self) -> List[Keypair]:
        """Mnemonic-derived wallets (index 0..count-1) followed by ``wallet.keys``."""
        out: List[Keypair] = []
        if self.wallet.count:
            if not self.wallet.mnemonic:
                raise ConfigError("wallet.count is set but no mnemonic was given")
            try:
                out.extend(keypairs_from_mnemonic(self.wallet.mnemonic, self.wallet.count))
            except ValueError as e:
                raise ConfigError(f"wallet.mnemonic: {e}") from e
        for n, key in enumerate(self.wallet.keys):
            try:
                out.append(keypair_from_base58(key))
            except ValueError as e:
                raise ConfigError(f"wallet.keys[{n}]: {e}") from e
        return out


def _parse(data: dict) -> Config:
    wallet = data.get("wallet") or {}
    network = data.get("network") or {}
    if not isinstance(wallet, dict) or not isinstance(network, dict):
        raise ConfigError("[wallet] and [network] must be tables")

    rpc = network.get("rpc", [])
    if isinstance(rpc, str):
        rpc = [rpc]
    keys = wallet.get("keys", [])
    if not isinstance(rpc, list) or not all(isinstance(u, str) for u in rpc):
        raise ConfigError("network.rpc must be a list of URLs")
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ConfigError("wallet.keys must be a list of base58 strings")

    try:
        count = int(wallet.get("count", 0))
        sleep = int(network.get("sleep", 0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"wallet.count / network.sleep must be integers: {e}") from e
    if count < 0 or sleep < 0:
        raise ConfigError("wallet.count and network.sleep must be >= 0")

    mnemonic = (os.getenv("MNEMONIC") or "").strip() or str(wallet.get("mnemonic", "")).strip()
    return Config(
        wallet=WalletConfig(mnemonic=mnemonic, count=count, keys=tuple(keys)),
        network=NetworkConfig(rpc=tuple(rpc), sleep=sleep),
    )


def load_config(path: Optional[str] = None) -> Config:
    """Load ``.env`` then the TOML config; a missing default config file yields an empty config."""
    load_dotenv()
    explicit = path or os.getenv("SOL_BATCH_CONFIG")
    cfg_path = Path(explicit or DEFAULT_CONFIG_PATH).expanduser()
    if not cfg_path.exists():
        if explicit:
            raise ConfigError(f"config file not found: {cfg_path}")
        return _parse({})
    try:
        data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{cfg_path}: {e}") from e
    return _parse(data)


def resolve_rpc_url(config: Config, override: str = "") -> str:
    override = (override or os.getenv("RPC_URL") or os.getenv("SOLANA_URL") or "").strip()
    if override:
        return override
    api_key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if api_key:
        return f"https://mainnet.helius-rpc.com/?api-key={api_key}"
    if config.network.rpc:
        return config.network.rpc[0]
    print("WARNING: no RPC configured; using public mainnet RPC (slower).")
    return PUBLIC_MAINNET_RPC
