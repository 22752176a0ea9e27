"""Pricing & discount resolution engine for home-improvement sales proposals."""

__version__ = "0.1.0"
