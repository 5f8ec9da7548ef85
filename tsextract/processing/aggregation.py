import inspect
import numpy as np
from typing import Callable, Union

# name -> (function used when skipping missing values, function used otherwise)
NAMED_AGGREGATORS = {
    "mean": (np.nanmean, np.mean),
    "median": (np.nanmedian, np.median),
    "sum": (np.nansum, np.sum),
    "min": (np.nanmin, np.min),
    "max": (np.nanmax, np.max),
    "std": (np.nanstd, np.std),
    "var": (np.nanvar, np.var),
    "count": (
        lambda values: np.count_nonzero(~np.isnan(values)),
        lambda values: values.size,
    ),
}


def aggregator_name(fun: Union[str, Callable]) -> str:
    """Readable name of an aggregation function, for logging."""
    if isinstance(fun, str):
        return fun
    return getattr(fun, "__name__", fun.__class__.__name__)


def _accepts_skipna(fun: Callable) -> bool:
    try:
        parameters = inspect.signature(fun).parameters
    except (TypeError, ValueError):
        return False
    return "skipna" in parameters


def resolve_aggregator(
    fun: Union[str, Callable], skip_missing: bool = True
) -> Callable[[np.ndarray], float]:
    """
    Turn an aggregation name or callable into a function reducing a 1-D float array to a scalar.

    Named aggregations ('mean', 'median', 'sum', 'min', 'max', 'std', 'var',
    'count') use numpy's NaN-aware variants when ``skip_missing`` is set.

    Callables must take a 1-D ``numpy.ndarray`` and return a scalar. A callable
    whose signature has a ``skipna`` parameter receives the flag; any other
    callable gets NaNs removed beforehand when ``skip_missing`` is set.

    Every returned function yields NaN for an empty input (or one that is
    empty after dropping NaNs), except 'count' and 'sum' which follow numpy.
    """
    if isinstance(fun, str):
        key = fun.lower()
        if key not in NAMED_AGGREGATORS:
            raise ValueError(
                f"Unknown aggregation '{fun}'. "
                f"Supported: {', '.join(sorted(NAMED_AGGREGATORS))} or a callable"
            )
        skipping, plain = NAMED_AGGREGATORS[key]
        func = skipping if skip_missing else plain
        keeps_empty = key in ("count", "sum")
    elif callable(fun):
        func = fun
        keeps_empty = False
    else:
        raise TypeError(
            f"Aggregation must be a string or a callable, got {type(fun).__name__}"
        )

    passes_flag = not isinstance(fun, str) and _accepts_skipna(fun)

    def aggregate(values) -> float:
        values = np.asarray(values, dtype="float64").ravel()
        if passes_flag:
            return func(values, skipna=skip_missing)
        if skip_missing and not isinstance(fun, str):
            values = values[~np.isnan(values)]
        if values.size == 0 and not keeps_empty:
            return np.nan
        if skip_missing and isinstance(fun, str) and np.isnan(values).all():
            return 0.0 if keeps_empty else np.nan
        return func(values)

    aggregate.__name__ = aggregator_name(fun)
    return aggregate
