"""Auto.js device control server: instruction dispatch and task scheduling."""

__version__ = "0.3.0"
