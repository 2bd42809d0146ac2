"""Batch SOL / SPL-token transfers across many wallets.

Probe balances in chunks, plan per-account instructions, pack them into
size-bounded multi-signer transactions and submit them one by one.
"""

__version__ = "0.1.0"
