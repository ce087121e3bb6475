"""Building blocks of a Nix binary cache server: manifests, narinfo, errors, local storage, row models and column migrations."""

__version__ = "0.1.0"