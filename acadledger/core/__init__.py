"""Core primitives: canonical encoding, time, records, identity, config, keys."""
