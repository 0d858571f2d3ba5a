"""Daily postback settlement service.

Settles the running total of cached conversions against the external
tracking endpoint once per day and clears the cache on confirmed receipt.
"""

__all__: list[str] = []
