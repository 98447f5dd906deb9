"""
Entitlement API: HTTP surface of the AI tool paywall.

Tool pages and the checkout page call these endpoints instead of talking
to MongoDB directly.
"""
