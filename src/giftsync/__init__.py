"""GiftSync - birthday countdown companion: cloud file sync and a one-shot reveal alarm."""

__version__ = "0.3.0"
