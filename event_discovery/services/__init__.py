"""Application services: cache engine, resilience layer and event fetching."""
