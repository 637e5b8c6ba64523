"""
Contract Kernel - multi-party e-signature engine

Drives a drafted agreement between a client and a speaker through its
signing lifecycle:
- Per-party bearer signing tokens with a shared expiration horizon
- Append-only signature ledger with a storage-level one-per-party guarantee
- Contract status derived from ledger state and time, never hand-set
- Best-effort notifications decoupled from the authoritative commit
"""

__version__ = "0.1.0"
