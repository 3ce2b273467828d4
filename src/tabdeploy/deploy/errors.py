"""
Errors raised while packaging, pinning, serving and querying models.
"""

from collections.abc import Sequence


class PinError(Exception):
    """A pin board operation could not be completed."""


class PinNotFoundError(PinError):
    """A pin or pin version does not exist on the board."""

    def __init__(self, name: str, version: str | None = None) -> None:
        self.name = name
        self.version = version
        if version is None:
            super().__init__(f"Pin not found: {name}")
        else:
            super().__init__(f"Pin version not found: {name}@{version}")


class PrototypeError(ValueError):
    """New data does not match the model's input prototype."""

    def __init__(self, message: str, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = list(missing)


class EndpointError(Exception):
    """A prediction endpoint returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"HTTP {self.status_code}: {base}"
