"""
Middlewares for the Telegram bot.

Currently includes:
- MemberContextMiddleware: resolves the current member/coach profile for an update.
"""

from .member_context import MemberContextMiddleware

__all__ = ["MemberContextMiddleware"]
