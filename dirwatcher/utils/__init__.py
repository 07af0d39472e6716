"""Helpers shared across dirwatcher modules."""
