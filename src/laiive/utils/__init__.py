"""Utility helpers shared across the laiive backend."""
