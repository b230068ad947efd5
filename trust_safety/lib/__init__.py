"""Infrastructure: errors, retry, locks, storage, metrics, messaging."""
