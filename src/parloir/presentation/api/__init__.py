"""
HTTP API for Parloir.
"""
