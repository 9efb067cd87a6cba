"""Command line interface: ``bunch-import``."""
