"""
Feature modules of the billing engine.
"""
