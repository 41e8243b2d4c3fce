"""CLI module for astute."""
