"""RF position estimation from RSSI and ranging readings.

This package estimates a receiver's 2D/3D position from noisy radio-signal
measurements gathered from WiFi access points and BLE beacons.

Subpackages:
    - rf: Path-loss model (RSSI <-> power <-> distance conversions)
    - fingerprinting: Radio sources, readings, fingerprints and KNN search
    - estimators: Linear and nonlinear least-squares primitives
    - lateration: Closed-form, nonlinear and consensus lateration solvers
    - positioning: Stateful position estimators with listeners and locking
"""

__version__ = "0.1.0"
