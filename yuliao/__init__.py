"""Yuliao: adaptive phrase drill with AI-generated scenarios."""

__version__ = "0.1.0"
