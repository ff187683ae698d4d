"""
Format parsers for job sources.

Pure functions from raw payloads (HTML, embedded JSON, JSON-LD, vendor REST
JSON) to pre-canonical job records. No network or storage access.
"""

__version__ = "1.0.0"
