"""
Device Fleet Operator Console
==============================
Polling and control core for a fleet of Modbus field devices
(up to ~12 units on a shared RS-485 gateway plus standalone
secondary buses).

Target Hardware: Linux operator workstation
I/O Interface:  Modbus TCP gateways
"""

__version__ = "1.0.0"
