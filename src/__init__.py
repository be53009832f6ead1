"""Marketplace reconciliation service: payments, identity verification and chat provisioning."""
