"""
dirserve: Static file server with directory listings
Built with FastAPI + Uvicorn
"""

__version__ = "1.0.0"
__author__ = "dirserve"
__description__ = "Static file server with cached metadata and safe path resolution"
