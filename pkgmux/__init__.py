"""pkgmux: one query, selection and install model over many package managers."""

__version__ = "0.1.0"
