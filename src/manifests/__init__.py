"""Manifest decoding, templating and annotation for submitted work units."""

from .objects import ManifestObject, OpaqueObject, decode_manifest, encode_manifest

__all__ = ["ManifestObject", "OpaqueObject", "decode_manifest", "encode_manifest"]
