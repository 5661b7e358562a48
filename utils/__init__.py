"""
Utilities Package
Configuration, logging and request logging helpers.
"""
