"""Domain layer: dispatch engine, task scheduling and supporting services."""
