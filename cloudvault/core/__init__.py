"""Core: configuration, constants, lifespan, and exception handlers."""
