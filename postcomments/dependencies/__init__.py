"""
Dependency wiring for the application.
"""
