"""
Assessment session lifecycle and submission pipeline.
"""
