"""
Error types for the exprmath analysis engine.

All errors derive from ValueError so callers that already guard numeric
routines with ``except ValueError`` keep working.
"""


class ExprMathError(ValueError):
    """Base class for all exprmath errors."""


class InvalidInputError(ExprMathError):
    """Malformed, non-finite or too-small input matrix."""


class DegenerateInputError(ExprMathError):
    """Input with no variance (PCA) or no non-zero distances (clustering)."""


class InvalidParameterError(ExprMathError):
    """Out-of-range k, m, n_init, max_iter or similar parameter."""


class UnsupportedMetricError(ExprMathError):
    """Unrecognized distance metric name."""


class UnsupportedLinkageError(ExprMathError):
    """Unrecognized linkage rule name."""
