"""
Drivers for the OCS observatory controller and the OnStep Aux device.

Both controllers speak a '#'-terminated ASCII command protocol over a serial
line or TCP socket; a shared command engine and capability discovery back the
two driver facades, with an HTTP control API on top.
"""

__version__ = "1.0.0"
