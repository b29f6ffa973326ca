"""Common building blocks."""
