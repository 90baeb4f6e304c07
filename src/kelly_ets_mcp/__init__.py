"""Kelly KBLS controller and BLE BMS tooling exposed over MCP."""

__version__ = "0.1.0"
