"""Identity providers used to build per-user and per-address limiter keys."""
