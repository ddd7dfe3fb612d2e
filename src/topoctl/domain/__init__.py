"""Domain layer — tiers, resource kinds, rules, and models.

This layer depends only on stdlib and pydantic (plus networkx for
container dependency cycles). It must never import from services,
commands, or config.
"""
