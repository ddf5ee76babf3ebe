"""Bundled medication configuration."""
