"""Device-polling scheduler and state aggregator for OLTs."""

__version__ = "1.0.0"
