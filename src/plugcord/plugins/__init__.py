"""
Guild plugins: declaration, registry and per-guild lifecycle.
"""
