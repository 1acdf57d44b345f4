"""Room assignment and local-search optimisers."""
