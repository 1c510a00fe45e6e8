"""
groupcal - group calendar availability and meeting scheduling.
"""

__version__ = "0.1.0"
