"""Marketing Hub - tiered analytics cache and sync engine"""

__version__ = "0.1.0"
