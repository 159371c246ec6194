"""
Domain layer: models, events and services of the subscriptions module.
"""
