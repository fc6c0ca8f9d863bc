"""Exceptions raised by ndgrad."""


class NdgradError(Exception):
    """Base class for all ndgrad errors."""


class ShapeError(NdgradError, ValueError):
    """Shapes that cannot be combined, reshaped, reduced or tiled as requested."""


class UnsupportedKernelOperation(NdgradError, NotImplementedError):
    """A numeric kernel was asked for a function its scalar kind does not provide."""


class UnsupportedScalarKind(NdgradError, TypeError):
    """No numeric kernel is registered for the requested scalar kind."""


__all__ = [
    "NdgradError",
    "ShapeError",
    "UnsupportedKernelOperation",
    "UnsupportedScalarKind",
]
