"""
liveconfig package

Re-applies external configuration to live, named, in-process components when
the environment changes. See `liveconfig.context` for the container, binder
and rebinder, and `liveconfig.ops` for the admin HTTP surface.
"""

__version__ = "0.1.0"
