"""CoreOS installation media: karg embed areas, minimal ISO packing and osmet packed images."""

__version__ = "0.1.0"