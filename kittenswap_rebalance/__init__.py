__version__ = "0.1.0"

from kittenswap_rebalance.core import BaseAdapter, KittenswapError

__all__ = [
    "__version__",
    "BaseAdapter",
    "KittenswapError",
]
