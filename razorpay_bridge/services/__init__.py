"""
Payment gateway services: checkout, confirmations, refunds, subscriptions
and webhook processing.
"""
