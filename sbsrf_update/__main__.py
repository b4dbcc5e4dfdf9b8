"""Entry point for ``python -m sbsrf_update``."""

from sbsrf_update.cli import main

if __name__ == "__main__":
    main()
