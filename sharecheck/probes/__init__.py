"""Share-link probes: one per cloud-drive provider, plus the dispatch registry."""

from sharecheck.probes.baidu import BaiduProbe
from sharecheck.probes.base import BaseProbe
from sharecheck.probes.quark import QuarkProbe
from sharecheck.probes.registry import ProbeRegistry, build_default_registry
from sharecheck.probes.unsupported import UnsupportedProbe, XunleiProbe

__all__ = [
    "BaseProbe",
    "BaiduProbe",
    "ProbeRegistry",
    "QuarkProbe",
    "UnsupportedProbe",
    "XunleiProbe",
    "build_default_registry",
]
