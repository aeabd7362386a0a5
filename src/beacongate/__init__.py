"""BeaconGate: evidence capture and policy evaluation for submitted advertisements."""

__version__ = "0.1.0"
