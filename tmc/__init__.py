"""tmc: Tendermint p2p network crawler."""

__version__ = "0.1.0"
