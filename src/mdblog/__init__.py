"""Tooling for a Markdown blog: front-matter checks, scaffolding and serving."""

__version__ = "0.1.0"
