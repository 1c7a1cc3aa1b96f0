"""Keep a local ``KEY=VALUE`` file in sync with an encrypted remote copy."""

__version__ = "0.1.0"
