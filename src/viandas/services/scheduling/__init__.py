"""Periodic loop driver and trigger time helpers."""
