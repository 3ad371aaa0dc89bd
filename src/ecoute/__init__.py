"""Ecoute — a two-peer WebSocket relay for live listening sessions."""

__version__ = "2.2.0"
