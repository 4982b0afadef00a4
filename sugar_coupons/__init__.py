"""Sugar coupon season roster, collection and sales statement service."""

__version__ = "1.0.0"
