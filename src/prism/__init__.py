"""PRISM: conversational analytics over interview-preparation data."""

__version__ = "0.1.0"
