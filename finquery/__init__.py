"""
FinQuery: natural-language questions over personal finance data.

Questions go to one of several generative-text providers (with rate-limit
fallback); structured answers come back as filter + aggregate queries that
are validated and executed locally in a restricted interpreter.
"""

__version__ = "1.0.0"
