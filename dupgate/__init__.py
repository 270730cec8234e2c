"""DupGate — federated duplicate-upload gate.

Decides whether an artifact upload may proceed by checking a federation of
remote storage instances for an existing copy of the same file.
"""

__version__ = "1.0.0"
