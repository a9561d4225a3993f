"""Steam workshop update notifier and restart reminder bot for Discord."""
