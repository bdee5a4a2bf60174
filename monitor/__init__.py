"""Service object and periodic task scheduling."""
