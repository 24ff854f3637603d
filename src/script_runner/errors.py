from __future__ import annotations


class ScriptValidationError(ValueError):
    """Raised when a request is rejected before any process is started.

    Example:
        ```python
        raise ScriptValidationError("Script is required")
        ```
    """
