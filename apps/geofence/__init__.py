"""Service-area checks for delivery and pickup addresses."""
