# Services Module
from .money import from_cents, money_str, parse_amount, parse_price, round_money, to_cents

__all__ = ["from_cents", "money_str", "parse_amount", "parse_price", "round_money", "to_cents"]
