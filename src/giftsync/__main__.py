"""Allow running GiftSync with ``python -m giftsync``."""

from giftsync.client.cli import main

if __name__ == "__main__":
    main()
