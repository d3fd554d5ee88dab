"""
Coaching insights over call statistics.

NOTE:
Keep this __init__ free of backend imports; google-generativeai is only
loaded when a Gemini backend is built.
"""

__all__: list[str] = []
