# LandLens Core Module
"""
Analysis engines for LandLens.

Contains:
- Photo quality analysis
- Upload validation and preprocessing
- Area estimation
- Terrain classification
- Result models and the Ok / Degraded outcome type
"""
