"""Authenticated HTTP routes (checkout, verification, chat, proposals, health)."""
