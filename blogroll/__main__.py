"""Main module for the blogroll MCP server.

This module allows the server to be run as a Python module using:
python -m blogroll

It delegates to the server application's main function.
"""

from blogroll.server.app import main

if __name__ == "__main__":
    main()
