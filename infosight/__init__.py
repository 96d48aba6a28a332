"""Infosight: weekly video reflections turned into KPIs and insights."""

__version__ = "1.0.0"
