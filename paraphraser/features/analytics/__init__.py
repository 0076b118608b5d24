"""Usage analytics: log buffer, payload builder, collector sink and streaming tee."""
