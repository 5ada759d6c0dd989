"""Shared utilities."""
from .logger import get_logger
from .money import to_decimal, format_money, format_signed

__all__ = ["get_logger", "to_decimal", "format_money", "format_signed"]
