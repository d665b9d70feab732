"""Background maintenance for the AccuViandas meal-ordering service."""

__version__ = "0.1.0"
