"""Storefront core: delivery eligibility, order settlement and loyalty points."""
