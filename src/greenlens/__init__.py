"""
greenlens - Photo capture, upload and gallery catalog

Core library behind the GreenLens gallery:
- Camera capture and file validation for new photos
- Byte upload to the image CDN with per-file progress
- Image metadata records stored in DuckDB
- Category, free-text and sort refinement of the published catalog
"""

__version__ = "0.1.0"
__author__ = "greenlens"
__description__ = "Photo capture, upload and categorized gallery catalog"
