"""Configuration, errors and core models."""
