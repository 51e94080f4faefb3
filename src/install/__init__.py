"""Installation engine: manifest, cache, extraction, cleanup and orchestration."""
