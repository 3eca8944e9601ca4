"""Client-side state synchronization for a single on-chain lottery contract."""

__version__ = "1.0.0"
