"""
Printing subsystem for Print Relay (the LAN side).

This package groups dispatcher-side functionality:

- tickets: ESC/POS encoders per job type (python-escpos)
- transports: network socket, OS spooler and serial port adapters
- client: HTTP client for the hosted print queue
- dispatcher: the fetch / print / acknowledge loop

For convenience, common names are re-exported for easy import.
"""

from .client import *
from .dispatcher import *
from .tickets import *
from .transports import *
