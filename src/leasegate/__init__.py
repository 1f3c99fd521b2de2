"""LeaseGate - lease and deployment orchestrator for a decentralized compute marketplace."""

__version__ = "0.1.0"
