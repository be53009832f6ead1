"""Identity verification — Didit sessions and webhook reconciliation."""
