# Result object and common interface
from .base_optimizer import OPSAlgorithm, OnlineAlgorithm

# Kernel-based experts
from .kernel import BK

# Clustering and log-utility
from .cluster_log import ClusLog

# Gradient-based learners
from .gradient import CWOGD, ONS, ExponentialGradient

# Reversion strategies
from .reversion import RMR, TCO

# Trend tracking
from .trend import KTPT

# Pattern matching
from .pattern import CORNU, CORNK

# Benchmarks
from .benchmark import CRP, BS
