"""sifpull: pull container images from libraries, hubs, URLs and registries."""

__version__ = "0.3.0"
