"""Central Command - work queue intake and agent dispatch.

This package polls an external work queue, assigns each queued item to a
processing agent using keyword heuristics, drives the item through its
status lifecycle, and records an audit trail of every execution attempt.
"""

__version__ = "0.1.0"
