"""Source-format plugins."""
