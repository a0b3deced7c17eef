"""
ID card extractor.

Upload ID-card images, choose which fields to read and in which language,
run them one by one through a vision extraction service and export the
consolidated table to a spreadsheet.
"""

__all__ = [
    "config",
    "errors",
    "logging",
    "paths",
]

__version__ = "0.1.0"
