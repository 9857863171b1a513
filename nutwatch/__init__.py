"""
nutwatch - UPS watchdog for Network UPS Tools (NUT) servers.
"""

__version__ = "0.1.0"
