"""BotForge Studio sync service."""

__version__ = "0.1.0"
