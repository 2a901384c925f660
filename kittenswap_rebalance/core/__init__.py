from kittenswap_rebalance.core.adapters.BaseAdapter import BaseAdapter
from kittenswap_rebalance.core.errors import KittenswapError

__all__ = [
    "BaseAdapter",
    "KittenswapError",
]
