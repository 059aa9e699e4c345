"""POS domain - Square, Toast and Clover ingestion and the unified sales table"""

__all__ = []
