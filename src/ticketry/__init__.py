"""
Ticketry - data-access layer and plugin system of the Ticketry issue tracker.
"""

__version__ = "0.1.0"
