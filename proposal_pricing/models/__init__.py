"""Pricing data model — enums, record schemas and the PricingState aggregate."""
