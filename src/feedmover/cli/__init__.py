"""
Command-line interface for feedmover.
"""
