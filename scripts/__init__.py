"""
Scripts for Follo
Utility scripts for seeding and horizon maintenance
"""

from .seed_data import seed_all, seed_demo_profile
from .regenerate_events import regenerate_all

__all__ = [
    "seed_all",
    "seed_demo_profile",
    "regenerate_all"
]
