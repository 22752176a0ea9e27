from .logger import setup_logging
from .numeric import coerce_amount, discount_percent, money_equal, parse_amount, round_cents

__all__ = [
    "setup_logging",
    "coerce_amount",
    "discount_percent",
    "money_equal",
    "parse_amount",
    "round_cents",
]
