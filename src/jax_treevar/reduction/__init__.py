"""
Order reduction of traced differential operators to explicit first-order
systems.
"""

from .options import ReductionOptions
from .normalize import normalize
from .coefficients import INSEPARABLE, Separable, LeadingCoefficient, extract_leading
from .splitter import SplitSystem, split
from .conditions import Condition, SortedConditions, sort_conditions, initial_state
from .first_order import FirstOrderSystem, to_first_order, trace

__all__ = [
    'ReductionOptions',
    'normalize',

    # Coefficient extraction
    'INSEPARABLE',
    'Separable',
    'LeadingCoefficient',
    'extract_leading',

    # Splitting
    'SplitSystem',
    'split',

    # Conditions
    'Condition',
    'SortedConditions',
    'sort_conditions',
    'initial_state',

    # Orchestration
    'FirstOrderSystem',
    'to_first_order',
    'trace',
]
