"""
Market data side of the engine: the indicator engine, the analysis cache
and the provider interface.
"""
