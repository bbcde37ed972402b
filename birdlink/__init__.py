"""
birdlink - resilient client for Doorbird intercoms
"""

__version__ = "0.1.0"
__logo__ = "🐦"
