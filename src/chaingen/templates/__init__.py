"""Bundled Jinja2 templates for generated client code."""
