"""Third-party football data sources, one adapter per vendor."""
