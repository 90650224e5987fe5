"""
Example drivers for rfloc.

Provides examples of:
    - Signal-space KNN fingerprinting against a calibration dataset
    - Linear, nonlinear and robust lateration from RSSI readings
"""

__all__ = []
