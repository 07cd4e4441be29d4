"""
Quiz Engine

Quiz domain model, session state machine and hint economy for a learning app.
"""

__version__ = "1.0.0"
