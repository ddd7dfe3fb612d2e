"""Infrastructure layer — resource graph engine, template rendering, templates.

This layer depends on stdlib and third-party libs (NetworkX, ruamel.yaml,
Jinja2). It must never import from services, commands, or output.
"""
