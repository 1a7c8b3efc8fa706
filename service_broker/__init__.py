"""
OBO token broker service.
"""
