"""
HTTP surface for the call lifecycle and analysis services.
"""
