"""
Core Metabolism Components
==========================

This module contains the core logic for Pecos River stream metabolism:

- MetabolismEngine: Per-gage retrieval, alignment and daily estimation
- DataProcessor: 15-minute grid, left-join merge, bounded gap fill, day filter
- MetabolismModel: Daily GPP / ER / K600 maximum-likelihood fit
"""

from .data_processor import DataProcessor
from .metabolism_model import MetabolismModel
from .metabolism_engine import MetabolismEngine
from .errors import (
    PipelineError,
    DataRetrievalError,
    SiteConfigurationError,
    EmptyResultError,
)

__all__ = [
    'MetabolismEngine',
    'DataProcessor',
    'MetabolismModel',
    'PipelineError',
    'DataRetrievalError',
    'SiteConfigurationError',
    'EmptyResultError',
]
