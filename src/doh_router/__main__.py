"""Allow `python -m doh_router`."""

from doh_router.cli import main

if __name__ == "__main__":
    main()
