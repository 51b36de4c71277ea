"""
Data models, rolling series primitives and input normalization.
"""
