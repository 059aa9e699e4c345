"""P&L domain - daily sales aggregation, labor costs, daily P&L and period metrics"""

__all__ = []
