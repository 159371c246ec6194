"""
Application layer of the subscriptions module: request DTOs consumed by the engine.
"""
