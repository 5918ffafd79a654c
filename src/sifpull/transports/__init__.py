"""Transport plugins, auto-discovered by :func:`sifpull.bootstrap.init_sifpull`."""
