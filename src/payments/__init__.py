"""Payments — checkout saga, fee calculation and Stripe event reconciliation.

A Payment row is written before Stripe is called, so every checkout attempt
leaves an auditable record even when the provider call fails.
"""
