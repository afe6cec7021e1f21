import logging
import numbers

import numpy as np

logger = logging.getLogger(__name__)


class InvalidWeightsError(ValueError):
    """Raised when a weight sequence cannot be turned into an alias table."""


class SampleRangeError(ValueError):
    """Raised when a query falls outside [0, n) x [0, total)."""


class AliasInvariantError(AssertionError):
    """Construction or lookup reached a state that validation rules out.

    This signals a bug in the table itself, never bad caller input.
    """


def _is_integer(value):
    return isinstance(value, numbers.Integral) and not isinstance(
        value, (bool, np.bool_)
        )


def _resolve_dtype(weights, dtype):
    if dtype is None:
        if isinstance(weights, np.ndarray) and weights.dtype.kind == "u":
            return weights.dtype
        return np.dtype(np.uint64)
    dtype = np.dtype(dtype)
    if dtype.kind not in ("u", "O"):
        raise InvalidWeightsError(
            f"dtype must be an unsigned integer type or object, got {dtype}"
            )
    return dtype


def _validate(weights, total, dtype):
    """Checks the input and returns it as a list of Python ints plus the total.

    The weights must be non-empty, non-negative, non-decreasing integers
    whose sum is positive and, scaled by their count, fits in `dtype`.
    """
    if isinstance(weights, np.ndarray):
        if weights.ndim != 1:
            raise InvalidWeightsError(
                f"weights must be one-dimensional, got shape {weights.shape}"
                )
        values = weights.tolist()
    else:
        values = list(weights)
    if not values:
        raise InvalidWeightsError("weights must not be empty")

    last = 0
    weight_sum = 0
    for i, w in enumerate(values):
        if not _is_integer(w):
            raise InvalidWeightsError(
                f"weight[{i}] must be an integer, got {w!r}"
                )
        w = int(w)
        if w < 0:
            raise InvalidWeightsError(f"weight[{i}] is negative: {w}")
        if w < last:
            raise InvalidWeightsError(
                f"weights must be non-decreasing: "
                f"weight[{i}]={w} < weight[{i - 1}]={last}"
                )
        values[i] = w
        last = w
        weight_sum += w

    if total is not None:
        if not _is_integer(total):
            raise InvalidWeightsError(
                f"total must be an integer, got {total!r}"
                )
        if int(total) != weight_sum:
            raise InvalidWeightsError(
                f"declared total {int(total)} does not match "
                f"the sum of weights {weight_sum}"
                )
    if weight_sum == 0:
        raise InvalidWeightsError("weights must not all be zero")

    if dtype.kind == "u":
        limit = int(np.iinfo(dtype).max)
        if weight_sum > limit:
            raise InvalidWeightsError(
                f"sum of weights {weight_sum} overflows {dtype}"
                )
        if weight_sum * len(values) > limit:
            raise InvalidWeightsError(
                f"weights scaled by n={len(values)} overflow {dtype}"
                )
    return values, weight_sum


def _build(weights, T):
    # Vose's alias method on integers. Scaling by n lets T stand in for 1.0
    # in every slot, so no fractional arithmetic is needed.
    n = len(weights)
    U = [w * n for w in weights]
    K = [None] * n
    underfull, overfull = [], []

    for i, u in enumerate(U):
        if u > T:
            overfull.append(i)
        elif u < T:
            underfull.append(i)
    # Pop the lowest indices first
    underfull.reverse()

    while underfull and overfull:
        i_u = underfull.pop()
        i_o = overfull.pop()
        K[i_u] = i_o
        # Give i_o credit for what it ceded and take what it donates to i_u
        U[i_o] = U[i_o] - T + U[i_u]
        if U[i_o] > T:
            overfull.append(i_o)
        elif U[i_o] < T:
            underfull.append(i_o)

    if underfull or overfull:
        raise AliasInvariantError(
            f"alias stacks did not drain together: "
            f"{len(underfull)} underfull, {len(overfull)} overfull left"
            )
    return U, K


class AliasTable:
    """Constant-time sampler for a discrete distribution with integer weights.

    Built once in O(n) from non-decreasing weights; afterwards `sample`
    maps a pair of uniform draws `x` in [0, n) and `y` in [0, total) to an
    outcome in O(1). The table draws no random numbers itself.

    Args:
        weights (sequence of int or 1-d numpy integer array): Unnormalised
            weights of outcomes 0..n-1, non-decreasing in index order.
        total (int, optional): Expected sum of the weights. Only checked,
            the total is always computed from the weights.
        dtype: Storage for the thresholds. Any numpy unsigned integer dtype,
            or `object` for unbounded Python ints. Defaults to the dtype of
            an unsigned numpy input and to uint64 otherwise.

    Raises:
        InvalidWeightsError: If the weights violate any of the above.
    """
    def __init__(self, weights, total=None, dtype=None):
        dtype = _resolve_dtype(weights, dtype)
        values, T = _validate(weights, total, dtype)
        U, K = _build(values, T)

        self._n = len(values)
        self._total = T
        self._u = U
        self._k = tuple(K)

        self._thresholds = np.array(U, dtype=dtype)
        self._thresholds.setflags(write=False)
        # -1 marks "no alias" for the vectorised lookup
        self._alias_index = np.array(
            [-1 if k is None else k for k in K], dtype=np.int64
            )
        self._alias_index.setflags(write=False)

        logger.debug(
            "Built alias table: n=%d total=%d aliased=%d",
            self._n, T, sum(k is not None for k in K),
            )

    def __len__(self):
        return self._n

    def __repr__(self):
        return (f"AliasTable(n={self._n}, total={self._total}, "
                f"dtype={self._thresholds.dtype})")

    @property
    def total(self):
        """Total weight; plays the role of probability 1.0."""
        return self._total

    @property
    def thresholds(self):
        """Read-only array U: slot x resolves to itself when y < U[x]."""
        return self._thresholds

    @property
    def aliases(self):
        """Tuple K of alias outcomes per slot, None where a slot is unaliased."""
        return self._k

    def _check_scalar(self, name, value, bound):
        if not _is_integer(value):
            raise SampleRangeError(f"{name} must be an integer, got {value!r}")
        value = int(value)
        if not 0 <= value < bound:
            raise SampleRangeError(
                f"{name}={value} is outside [0, {bound})"
                )
        return value

    def sample(self, x, y):
        """Resolves one draw to an outcome index.

        Args:
            x (int): Uniform draw from [0, len(self)).
            y (int): Uniform draw from [0, self.total).

        Returns:
            int: `x` if `y < U[x]`, otherwise the alias of slot `x`.
        """
        x = self._check_scalar("x", x, self._n)
        y = self._check_scalar("y", y, self._total)
        if y < self._u[x]:
            return x
        alias = self._k[x]
        if alias is None:
            raise AliasInvariantError(
                f"slot {x} has no alias but y={y} >= U[{x}]={self._u[x]}"
                )
        return alias

    def _check_array(self, name, values, bound):
        if values.size == 0:
            return values.astype(np.int64)
        if values.dtype.kind not in ("i", "u", "O"):
            raise SampleRangeError(
                f"{name} must hold integers, got dtype {values.dtype}"
                )
        if values.dtype.kind == "O" and not all(
                _is_integer(v) for v in values.flat):
            raise SampleRangeError(f"{name} must hold integers")
        lo, hi = int(values.min()), int(values.max())
        if lo < 0 or hi >= bound:
            raise SampleRangeError(
                f"{name} has values outside [0, {bound}): min={lo}, max={hi}"
                )
        return values

    def sample_many(self, xs, ys):
        """Vectorised `sample` over equally shaped integer arrays.

        Returns:
            numpy.ndarray: int64 outcome indices with the shape of `xs`.
        """
        xs = np.asarray(xs)
        ys = np.asarray(ys)
        if xs.shape != ys.shape:
            raise SampleRangeError(
                f"xs and ys must have the same shape, "
                f"got {xs.shape} and {ys.shape}"
                )
        xs = self._check_array("xs", xs, self._n)
        ys = self._check_array("ys", ys, self._total)
        if xs.size == 0:
            return np.empty(xs.shape, dtype=np.int64)

        xs = xs.astype(np.int64)
        ys = ys.astype(self._thresholds.dtype)
        own = np.asarray(ys < self._thresholds[xs], dtype=bool)
        out = np.where(own, xs, self._alias_index[xs])
        if np.any(out < 0):
            raise AliasInvariantError(
                "lookup resolved to a slot with no alias"
                )
        return out

    def grid_counts(self):
        """Number of cells of the grid [0, n) x [0, total) that resolve to
        each outcome. Equals n * weight[i] for every outcome i.
        """
        counts = [0] * self._n
        for x, (u, k) in enumerate(zip(self._u, self._k)):
            counts[x] += u
            if k is not None:
                counts[k] += self._total - u
        return counts

    def weights(self):
        """Recovers the input weights from the table."""
        return [c // self._n for c in self.grid_counts()]

    def probabilities(self):
        return np.array(self.weights(), dtype=np.float64) / self._total
