"""Overview statistics derived from a stored aggregate snapshot."""
