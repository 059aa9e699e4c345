"""Pending outflows domain - issued checks and ACH payments awaiting bank clearance"""

__all__ = []
