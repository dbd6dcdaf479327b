"""Clinic point-of-sale: transaction engine, sqlite persistence and PySide6 screens."""

__version__ = "1.0.0"
