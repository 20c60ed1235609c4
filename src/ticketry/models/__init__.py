"""Database table definitions for Ticketry."""
