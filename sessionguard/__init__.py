"""SessionGuard: real-time clinical safety monitoring for treatment sessions."""

__version__ = "0.1.0"
