"""Split engine package."""

from groupledger.splitting.engine import compute_split, shares_from_split

__all__ = ["compute_split", "shares_from_split"]
