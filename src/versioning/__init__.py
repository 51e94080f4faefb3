"""Version identifiers, ranges and ordering."""
