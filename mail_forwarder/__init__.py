"""Forward a mailbox's email for a date range to another mailbox."""

__version__ = "1.0.0"
