"""Metadata modeling — type classification and package descriptors."""
