"""
Application factory for creating and configuring the FastAPI app.
"""
from .factory import create_app

__all__ = ['create_app']
