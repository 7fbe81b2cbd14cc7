"""Manage multiple local branch copies of a single vendor installation."""
