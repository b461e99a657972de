"""
Cookie Battle: team battle economy engine and its HTTP service.
"""
