"""
Metric Document Router (MDR)
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Routes metric samples to time-based indices and ingest pipelines of a
document store, encodes them as documents and writes them in bulk.
"""

from mdr.__version__ import __version__

__all__ = ["__version__"]
