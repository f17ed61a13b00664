"""Perpetual response cache in front of a paid geocoding provider."""

__version__ = "0.1.0"
