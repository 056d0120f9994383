"""Utility modules for tracklayer."""
