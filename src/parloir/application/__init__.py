"""
Application layer for Parloir.
"""
