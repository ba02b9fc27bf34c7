"""
Utility modules for CivicLens.

Cross-cutting concerns:
- Vectors: cosine similarity and centroid math
- Audit: stage execution logging
- Report: CSV export of the problem table
- Sample data: synthetic complaints for demos
- Timestamps: UTC helpers
"""
