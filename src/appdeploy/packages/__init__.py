"""Package inspection."""
