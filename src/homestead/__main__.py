"""Entry point for ``python -m homestead``."""

from .cli import main

if __name__ == "__main__":
    main()
