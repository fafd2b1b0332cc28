"""State/differ layer.

This package owns the per-publication identity map and is the only place
allowed to turn a fresh snapshot into sink operations.
"""
