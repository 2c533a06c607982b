"""Configuration management and block ciphers for the mieru proxy."""

__version__ = "2.4.0"