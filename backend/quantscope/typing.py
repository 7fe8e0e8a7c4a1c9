from __future__ import annotations

from typing import Any, TypeAlias

import numpy as np
import numpy.typing as npt

NDArrayFloat: TypeAlias = npt.NDArray[np.floating[Any]]
NDArrayInt: TypeAlias = npt.NDArray[np.integer[Any]]
NDArrayBool: TypeAlias = npt.NDArray[np.bool_]
