"""
Kitty Server module.

FastAPI application exposing the composition launcher over HTTP.
"""
