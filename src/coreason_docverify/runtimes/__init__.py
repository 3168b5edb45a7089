"""
Sandbox runtime implementations.
"""
