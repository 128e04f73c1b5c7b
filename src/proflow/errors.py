"""Exceptions raised by proflow."""


class ProflowError(Exception):
    """Base class for every error raised by proflow itself."""


class ReservedNameError(ProflowError, ValueError):
    """A host field collides with a reserved accessor name."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"The field name {name!r} is reserved for reactive hosts! "
            "Values passed to reactivate() can not contain fields named as accessors."
        )
        self.name = name


class DestroyedError(ProflowError, RuntimeError):
    """A destroyed container was read or written."""


class BufferSizeError(ProflowError, ValueError):
    """A size-buffered stream was built without a positive capacity."""
