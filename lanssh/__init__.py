"""lanssh — zero-configuration discovery of SSH hosts on the local network."""

__version__ = "0.1.0"
