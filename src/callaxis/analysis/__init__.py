"""
Analysis submission module.

NOTE:
This package __init__ MUST be lightweight. Import submodules
(pipeline, dispatch, inflight, ...) explicitly.
"""

__all__: list[str] = []
