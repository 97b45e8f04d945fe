"""Configuration, logging, exceptions and database plumbing."""
