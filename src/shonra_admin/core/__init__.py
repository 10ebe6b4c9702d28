"""Core primitives: settings, clock, hashing, signatures and errors."""
