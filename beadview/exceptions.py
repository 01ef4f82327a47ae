"""
beadview exceptions
"""


class BeadviewError(Exception):
    """Base exception for all beadview errors"""

    pass


class ConfigError(BeadviewError):
    """Raised when .beadview/config.yaml cannot be read"""

    pass


class FetchError(BeadviewError):
    """Raised when the bead source cannot be read"""

    def __init__(self, message: str, command: str | None = None, returncode: int | None = None):
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class BeadNotFoundError(FetchError):
    """Raised when a single-bead lookup returns nothing"""

    def __init__(self, bead_id: str):
        super().__init__(f"bead not found: {bead_id}")
        self.bead_id = bead_id


class RequestCancelledError(BeadviewError):
    """Raised into a request that was explicitly cancelled"""

    def __init__(self) -> None:
        super().__init__("cancelled")
