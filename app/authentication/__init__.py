"""
Authentication application.

Key components:
    - User model: email login, marketplace role, Stripe customer/account ids
    - Address model: saved addresses with a geocode cache
    - JWT token endpoints (simplejwt)
"""
