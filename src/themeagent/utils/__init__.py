"""Small shared helpers (hashing, slugs, token estimates)."""
