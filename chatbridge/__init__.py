"""chatbridge: relay engine for a local Messages chat database."""

__version__ = "0.1.0"
