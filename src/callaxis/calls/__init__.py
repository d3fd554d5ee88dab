"""
Call lifecycle module.

NOTE:
This package __init__ MUST be lightweight. Import submodules
(poller, reconciler, sessions, ...) explicitly.
"""

__all__: list[str] = []
