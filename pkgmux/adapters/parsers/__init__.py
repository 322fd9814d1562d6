"""Format parsers: one per on-disk metadata format, plus the remote client."""

from pkgmux.adapters.parsers.aur import AurClient
from pkgmux.adapters.parsers.base import FormatParser, ParseResult
from pkgmux.adapters.parsers.dpkg import DpkgParser
from pkgmux.adapters.parsers.nix import NixParser
from pkgmux.adapters.parsers.pacman import PacmanParser
from pkgmux.adapters.parsers.portage import PortageParser
from pkgmux.adapters.parsers.solv import SolvParser

__all__ = [
    "AurClient",
    "DpkgParser",
    "FormatParser",
    "NixParser",
    "PacmanParser",
    "ParseResult",
    "PortageParser",
    "SolvParser",
]
