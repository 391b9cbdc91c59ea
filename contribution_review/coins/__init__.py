"""
Coin registry: currency symbols contributions can be made in, with their
conversion rate to points and aggregate contribution stats.
"""

from contribution_review.coins.registry import CoinRegistry, normalize_symbol

__all__ = ["CoinRegistry", "normalize_symbol"]
