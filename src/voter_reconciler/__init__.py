"""Voter file reconciliation into a campaign contact database."""

__version__ = "0.1.0"
