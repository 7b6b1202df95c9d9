"""Conformance host for tabular data plugins."""
