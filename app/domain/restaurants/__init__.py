"""Restaurants domain - restaurant creation, membership and the default chart of accounts"""

__all__ = []
