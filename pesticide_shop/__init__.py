"""Back-office for a small pesticide and apparel shop."""
