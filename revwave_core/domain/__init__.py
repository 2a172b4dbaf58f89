"""Domain layer for revWave."""
