"""Allow `python -m erpsync`."""

from erpsync.interface.cli import main

if __name__ == "__main__":
    main()
