"""
Collaborator contracts consumed by plugins, and their Discord adapters.
"""
