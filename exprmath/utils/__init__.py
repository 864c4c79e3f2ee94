"""
Shared helpers for exprmath.
"""
