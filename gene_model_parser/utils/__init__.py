"""Utility components for the gene model parser."""
