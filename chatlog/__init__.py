"""Helpers for chat log data: time ranges, .dat image decoding, decompression, temporary copies, file monitoring and configuration."""

__version__ = "0.1.0"