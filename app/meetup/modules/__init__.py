"""
Feature modules live under this package.

Each module owns its models, service functions and JSON blueprint, and reuses the
platform primitives (auth, role checks, audit, DB session) from app.meetup.
"""
