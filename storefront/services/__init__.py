"""Domain services: eligibility, cart, settlement, points, addresses, reviews."""
