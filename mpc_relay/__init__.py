"""Rendezvous coordinator and per-party round drivers for threshold key
generation and threshold signing."""

__version__ = "0.1.0"
