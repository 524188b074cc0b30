"""auth/ -- Authentication package for Gatehouse.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and
throttle/. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
