"""
Subscriptions module: plans, recurring payments, billing attempts and analytics.
"""
