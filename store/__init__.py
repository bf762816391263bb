"""Small JSON-file stores for pr-worklist state (repositories, snoozes, rate-limit counters)."""
