"""Payroll cycle workflow core: pay period submissions and the admin batch pipeline."""

__version__ = "0.1.0"
