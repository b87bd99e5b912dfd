"""
Integrations with external services.
"""
