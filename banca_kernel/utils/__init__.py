"""Utility functions for the banking kernel."""
