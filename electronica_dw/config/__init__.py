"""
Electronica Data Warehouse
Configuration Module
"""
from .settings import Settings, HybridJoinSettings, get_settings

__all__ = ["Settings", "HybridJoinSettings", "get_settings"]
