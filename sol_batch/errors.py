from __future__ import annotations


class SolBatchError(Exception):
    """Base class for errors raised by sol_batch."""


class PreconditionError(SolBatchError):
    """A run cannot start: bad amount, unfunded fee payer, wrong mint authority."""


class ConfigError(SolBatchError):
    pass


class AccountDecodeError(SolBatchError):
    """On-chain account payload did not match the expected shape."""


class RpcError(SolBatchError):
    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
