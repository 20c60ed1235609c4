"""HTTP API for Ticketry."""
