"""Taleforge: API client and terminal front-end for an AI storytelling RPG."""

__version__ = "0.1.0"
