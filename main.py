"""testbench: run describe/it/expect tests against code in a sandbox.

Usage:
    python main.py run source.py tests.py
    python main.py project list
"""

from testbench.cli.cli import main


if __name__ == "__main__":
    main()
