"""
scanfinder - network scanner discovery over mDNS/DNS-SD.
"""

__version__ = "0.1.0"
