"""Billing domain - Stripe subscriptions and plan state"""

__all__ = []
