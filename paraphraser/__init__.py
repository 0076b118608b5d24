"""Paraphrase and re-tone API with side-channel usage analytics."""

__version__ = "0.1.0"
