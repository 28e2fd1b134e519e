"""
Infrastructure layer for Parloir.
"""
