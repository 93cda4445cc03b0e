"""Shared models and persistence services."""
