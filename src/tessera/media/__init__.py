"""Source resolution, classification and candidate pools.

Qt-bound pieces (scanner, watcher, backend) are imported from their
modules directly.
"""
from .classify import MediaCategory, TypeClassifier  # noqa: F401
from .pool import Candidate, CandidatePool  # noqa: F401
from .source import GlobSource, PathSource, Source, escape_glob, resolve  # noqa: F401

__all__ = [
    "MediaCategory",
    "TypeClassifier",
    "Candidate",
    "CandidatePool",
    "GlobSource",
    "PathSource",
    "Source",
    "escape_glob",
    "resolve",
]
