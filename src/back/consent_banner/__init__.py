"""Consent banner security and asset-integrity gateway."""

__version__ = '0.1.0'
