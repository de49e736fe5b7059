"""Configuration, logging and abort handling."""
