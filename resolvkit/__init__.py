"""Inspect and manage the operating system's DNS resolver configuration."""

__version__ = "0.1.0"