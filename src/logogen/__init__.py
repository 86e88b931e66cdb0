"""LogoGen - logo and icon generation service with optional prompt enhancement."""

__version__ = "1.0.0"
