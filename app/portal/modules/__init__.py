"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its models, services and blueprints,
while reusing platform primitives (auth, audit, DB session).
"""
