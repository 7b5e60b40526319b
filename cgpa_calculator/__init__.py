"""CGPA calculator: grade resolution, CSV parsing and credit-weighted aggregation."""

__version__ = "1.0.0"
