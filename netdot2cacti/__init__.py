"""
netdot2cacti - Netdot to Cacti device synchronization.
"""

__version__ = "1.0.0"
