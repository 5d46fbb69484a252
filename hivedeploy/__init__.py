"""Building blocks for deploying NixOS system profiles to a hive of machines."""

__version__ = "0.1.0"

__all__ = ["__version__"]