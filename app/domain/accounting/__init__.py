"""Accounting domain - chart of accounts, journal entries and bank transaction categorization"""

__all__ = []
