"""Finances app package.

Payments and their gateways, commission rates, the settlement ledger,
refunds and professional payouts.
"""
