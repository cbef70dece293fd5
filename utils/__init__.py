"""Tracking, storage, sync and geometry services."""
