"""Configuration, memory accounting and maintenance for vecstore."""
