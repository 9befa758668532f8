"""Load, package and resolve Helm charts from local directories and chart repositories."""

__version__ = "0.1.0"