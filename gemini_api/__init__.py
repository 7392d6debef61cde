"""
Gemini PDF Chat Gateway

A thin HTTP front-end over Google Gemini that accepts PDF uploads and
text prompts and keeps short-lived, per-client chat sessions in memory.

Features:
- One-shot PDF + prompt generation
- Multi-turn chat sessions with optional PDF attachments
- Per-client session isolation and time-based expiry
- Background cleanup of expired sessions
- API key protected endpoints
"""

__version__ = "1.0.0"
__author__ = "Gemini API Team"
__description__ = "HTTP gateway for Gemini chat sessions over PDF documents"
