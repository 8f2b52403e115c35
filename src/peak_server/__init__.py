"""
peak_server

Provider-routing backend for the Peak AI search application.
"""

__version__ = "0.3.0"
