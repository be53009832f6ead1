"""Webhook inbound system.

Receives webhooks from Stripe (payments) and Didit (identity verification).
Each webhook is signature-verified over the raw body, then reconciled
against local state idempotently.
"""
