"""ndgrad: strided N-dimensional arrays with a small reverse-mode autodiff engine.

Tensors are flat NumPy buffers plus shape bookkeeping; the graph and layers on
top are enough to train a small fully connected network.
"""

from importlib.metadata import PackageNotFoundError, version

from . import ops

try:
    __version__ = version("ndgrad")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for uninstalled package
from .backend import (
    DEFAULT_SEED,
    REDUCE_ALL,
    NumericKernel,
    get_kernel,
    set_seed,
)
from .errors import (
    NdgradError,
    ShapeError,
    UnsupportedKernelOperation,
    UnsupportedScalarKind,
)
from .function import (
    Add,
    Dot,
    Function,
    Mul,
    Sigmoid,
    Tanh,
    Transpose,
    Variable,
)
from .layer import (
    Chain,
    DenseLayer,
    InputLayer,
    Layer,
    SigmoidLayer,
    TanhLayer,
)
from .loss import MSELoss
from .ops import (
    arange,
    array,
    full,
    ones,
    uniform,
    zeros,
    zeros_like,
)
from .optimizer import (
    SGD,
    Optimizer,
)
from .tensor import NDArray

__all__ = [
    "DEFAULT_SEED",
    "REDUCE_ALL",
    "SGD",
    "Add",
    "Chain",
    "DenseLayer",
    "Dot",
    "Function",
    "InputLayer",
    "Layer",
    "MSELoss",
    "Mul",
    "NDArray",
    "NdgradError",
    "NumericKernel",
    "Optimizer",
    "ShapeError",
    "Sigmoid",
    "SigmoidLayer",
    "Tanh",
    "TanhLayer",
    "Transpose",
    "UnsupportedKernelOperation",
    "UnsupportedScalarKind",
    "Variable",
    "__version__",
    "arange",
    "array",
    "full",
    "get_kernel",
    "ones",
    "ops",
    "set_seed",
    "uniform",
    "zeros",
    "zeros_like",
]
