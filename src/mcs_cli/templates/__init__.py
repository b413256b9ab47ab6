"""Placeholder substitution and marker-delimited section composition."""
