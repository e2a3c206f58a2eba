"""Local LVM volume management: command wrappers, report parsing and IO rate limits."""

__version__ = "0.1.0"
__all__ = ["constants", "iolimiter", "report", "commands"]