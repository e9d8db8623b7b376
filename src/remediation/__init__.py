"""Remediation mutators applied to already-deployed manifests."""

from .scaling import horizontal_scale, scale, vertical_scale
from .secure import SecurityBundle, build_security_bundle, parse_command

__all__ = [
    "SecurityBundle",
    "build_security_bundle",
    "horizontal_scale",
    "parse_command",
    "scale",
    "vertical_scale",
]
