"""Polygon blockchain nodes for workflow automation"""

__version__ = "0.1.0"
