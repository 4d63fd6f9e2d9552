"""tcpsweep - bounded non-blocking TCP connect scanner."""

__version__ = "0.1.0"
