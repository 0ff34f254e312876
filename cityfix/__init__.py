"""CityFix issue lifecycle and entitlement engine."""

__version__ = "1.0.0"
