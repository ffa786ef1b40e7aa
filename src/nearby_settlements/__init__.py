"""Border-filtered grid points and the settlements around them."""

__version__ = "0.1.0"
