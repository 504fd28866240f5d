"""Framework-independent core: configuration, logging, scheduling, metrics."""
