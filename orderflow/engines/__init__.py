"""Pure order flow engines plus the public REST fetcher."""
