"""
Authentication app: the email-based User model shared by the billing engine.
"""
