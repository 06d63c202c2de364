"""
Real Estate Price Estimator

Small neural-network property valuation service with:
- Fixed-scale feature normalization
- Feed-forward regressor trained on a bundled dataset
- Single-slot model persistence with schema stamp
- Session controller and FastAPI surface
"""

__version__ = "1.0.0"
