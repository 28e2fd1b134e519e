"""
Presentation layer for Parloir.
"""
