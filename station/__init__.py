"""
SatHub station client
Uploads completed satellite passes from a SatDump output directory to SatHub.
"""

__version__ = "0.4.0"
