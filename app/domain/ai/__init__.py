"""AI domain - OpenRouter-backed category suggestions for bank transactions and POS sales"""

__all__ = []
