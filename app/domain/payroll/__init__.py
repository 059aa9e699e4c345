"""Payroll domain - Gusto webhook events"""

__all__ = []
