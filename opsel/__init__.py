import logging

from opsel.errors import OpselError, PortfolioError, DataError, OptimizationError
from opsel.algorithms import (
    BK,
    ClusLog,
    CWOGD,
    ONS,
    ExponentialGradient,
    RMR,
    TCO,
    KTPT,
    CORNU,
    CORNK,
    CRP,
    BS,
    OPSAlgorithm,
)
from opsel.metrics import metrics, turnover
from opsel.utils import relative_prices

__version__ = "0.1.0"

# Handlers are left to the application
logging.getLogger(__name__).addHandler(logging.NullHandler())
