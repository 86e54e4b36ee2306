"""
Catalog app: products with tiered prices and delivery tiers, and buyer carts.

The order flow reads carts and products from here and decrements stock once
payment is confirmed.
"""
