"""
Infrastructure layer of the subscriptions module: external service adapters.
"""
