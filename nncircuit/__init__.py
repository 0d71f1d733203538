"""nncircuit — circuit-style schematics of neural-network dataflow graphs."""

__version__ = "0.3.0"
