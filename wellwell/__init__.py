"""wellwell: declarative workstation configuration."""

__version__ = "0.1.0"
