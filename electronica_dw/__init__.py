"""
Electronica Data Warehouse

Star-schema warehouse loader with a HYBRIDJOIN fact builder.
"""

__version__ = "1.0.0"
