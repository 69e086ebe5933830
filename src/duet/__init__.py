"""Duet processing-job tracker and video player pool."""

__version__ = "0.4.0"
