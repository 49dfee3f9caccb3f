"""Console entry: ``python -m ethagent run -i eth0``."""

from ethagent.cli import main

if __name__ == "__main__":
    main()
