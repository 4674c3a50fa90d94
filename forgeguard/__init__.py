"""
forgeguard - role-based access control for projects, documents and messages.
"""

__version__ = "0.1.0"
