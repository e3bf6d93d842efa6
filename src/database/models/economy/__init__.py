"""
Economy models: user-held item stacks.
"""

from .inventory import UserInventory

__all__ = ["UserInventory"]
