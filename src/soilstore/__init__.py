"""SoilStore: a resilient data-access layer for soil test reports."""

__version__ = "0.1.0"
