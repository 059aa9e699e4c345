"""Rules domain - categorization rules for bank transactions and POS sales"""

__all__ = []
