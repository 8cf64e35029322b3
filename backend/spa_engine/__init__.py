"""Reservation & credit engine for the spa booking platform."""

__version__ = "0.1.0"
