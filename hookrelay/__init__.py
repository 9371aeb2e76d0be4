"""HookRelay - webhook intake, transformation and delivery service."""

__version__ = "1.0.0"
