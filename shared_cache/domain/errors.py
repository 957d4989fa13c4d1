from __future__ import annotations


class ModuleError(Exception):
    """Raised when a test module cannot run because its environment is unusable.

    Distinct from ``AssertionError`` so test runners report it as a setup
    error rather than as a failed expectation.
    """

    def __init__(self, module: str, reason: str) -> None:
        super().__init__(f"{module}: {reason}")
        self.module = module
        self.reason = reason
