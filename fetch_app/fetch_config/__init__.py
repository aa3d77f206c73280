"""
Fetch configuration module: persisted dialog choices and the builder that
turns form state into validated fetch options.
"""

from .models import BuildResult, FormState, ValidationFailure
from .store import PersistedConfigStore
from .builder import ConfigurationBuilder, split_arxiv_ids

__all__ = [
    "BuildResult",
    "FormState",
    "ValidationFailure",
    "PersistedConfigStore",
    "ConfigurationBuilder",
    "split_arxiv_ids",
]
