from . import buy_now
from . import checkout
from . import pricing

__all__ = [
    "buy_now",
    "checkout",
    "pricing",
]
