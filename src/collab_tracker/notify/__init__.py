"""Outbound notifications (invitation emails)."""
