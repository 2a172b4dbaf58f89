"""revWave core: Google Business Profile sync and email campaigns."""

__version__ = "0.1.0"
