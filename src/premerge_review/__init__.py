"""
premerge-review

Splits large diffs into model-sized review requests and merges the answers
into one report.
"""

__version__ = "0.1.0"
