"""
Utility helpers for coreason-docverify.
"""
