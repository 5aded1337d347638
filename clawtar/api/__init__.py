"""
Clawtar HTTP API
FastAPI application, routers and background timers
"""
