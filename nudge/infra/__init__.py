"""Infrastructure adapters (Redis, Postgres, clocks, locks)."""
