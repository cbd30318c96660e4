"""
Web Push Relay
"""
__version__ = "1.0.0"
