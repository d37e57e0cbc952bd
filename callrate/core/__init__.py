"""Cross-cutting pieces: configuration, errors, logging and timing."""
