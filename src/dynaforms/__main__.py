"""Entry point for 'python -m dynaforms' command.

This module allows the Dynaforms CLI to be invoked using
'python -m dynaforms'.
"""

from dynaforms.cli import main

if __name__ == "__main__":
    main()
