"""Support library for a local DNS forwarder: config loading, networking and TLS helpers, bit searches and prefix trees."""

__version__ = "0.1.0"

__all__ = ["bitops", "conf", "netutil", "radix", "sysutil"]