"""
CivicLens - complaint problem discovery pipeline.
"""

__version__ = "1.0.0"
