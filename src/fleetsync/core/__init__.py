"""Configuration, shared API models and the command line interface."""
