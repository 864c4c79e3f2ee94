"""
System components for exprmath.

This module provides the configuration layer shared by analyses.
"""

from exprmath.components.config import Config, ConfigManager
