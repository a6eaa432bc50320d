"""
Billing app: payment schedules and billing state.

Turns a product's price and payment model into scheduled payments, drives
them through Stripe, reconciles webhook and refund outcomes and gates
course access on payment health.
"""
