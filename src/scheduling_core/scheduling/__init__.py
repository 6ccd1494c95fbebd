"""Scheduling primitives: time windows and the booking concurrency guard."""
