class OpselError(Exception):
    """Base class of every error raised by opsel."""
    pass

class PortfolioError(OpselError):
    """Invalid hyperparameter, variant or initial portfolio."""
    pass

class DataError(OpselError):
    """Malformed price data, or too little of it for the requested horizon."""
    pass

class OptimizationError(OpselError):
    """A constrained solve failed or was given non-finite input."""
    pass
