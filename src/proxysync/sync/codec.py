"""
Sync payload codec for the platform key-value store.

The store caps each item at a few KB, so the configuration is written
as compact JSON, zlib-compressed, base64-encoded and cut into chunks:

    {
      "syncMeta":  {"chunks": 3, "encoding": "zlib+b64", "size": 18211},
      "syncData0": "eJzt...",
      "syncData1": "...",
      "syncData2": "..."
    }

Payloads written before chunking (a bare configuration object) are
still accepted on decode.
"""

from __future__ import annotations

import base64
import binascii
import json
import zlib
from typing import Any, Mapping, Optional, Union

from ..errors import DecodeError
from ..models import SettingsConfig

SYNC_META_KEY = "syncMeta"
CHUNK_PREFIX = "syncData"
CHUNK_SIZE = 7_000
ENCODING = "zlib+b64"


def chunk_key(index: int) -> str:
    return f"{CHUNK_PREFIX}{index}"


def is_payload_key(key: str) -> bool:
    """True for keys this codec owns in the store."""
    return key == SYNC_META_KEY or (
        key.startswith(CHUNK_PREFIX) and key[len(CHUNK_PREFIX):].isdigit()
    )


def encode_sync_payload(config: Union[SettingsConfig, Mapping[str, Any]]) -> dict[str, Any]:
    """Encode a configuration into store items.

    Args:
        config: Configuration (already stripped) or its camelCase dict.

    Returns:
        dict: Store items, meta key plus one key per chunk.
    """
    data = config.to_json_dict() if isinstance(config, SettingsConfig) else dict(config)
    raw = json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
    packed = base64.b64encode(zlib.compress(raw, 9)).decode("ascii")

    chunks = [packed[i:i + CHUNK_SIZE] for i in range(0, len(packed), CHUNK_SIZE)] or [""]
    payload: dict[str, Any] = {
        SYNC_META_KEY: {"chunks": len(chunks), "encoding": ENCODING, "size": len(raw)},
    }
    for index, chunk in enumerate(chunks):
        payload[chunk_key(index)] = chunk
    return payload


def decode_sync_payload(data: Optional[Mapping[str, Any]]) -> Optional[dict[str, Any]]:
    """Decode store items back into a camelCase configuration dict.

    Args:
        data: Everything read from the store.

    Returns:
        The configuration dict, or None if the store holds no payload.

    Raises:
        DecodeError: If a payload is present but corrupted.
    """
    if not data:
        return None

    meta = data.get(SYNC_META_KEY)
    if meta is None:
        # bare, pre-chunking payload
        if isinstance(data.get("options"), dict):
            return dict(data)
        return None

    if not isinstance(meta, Mapping):
        raise DecodeError("Sync metadata is not an object")
    if meta.get("encoding", ENCODING) != ENCODING:
        raise DecodeError(f"Unsupported sync encoding: {meta.get('encoding')}")

    try:
        count = int(meta["chunks"])
        packed = "".join(str(data[chunk_key(i)]) for i in range(count))
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"Sync payload is incomplete: {exc}") from exc

    try:
        raw = zlib.decompress(base64.b64decode(packed, validate=True))
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"Sync payload is corrupted: {exc}") from exc

    if not isinstance(decoded, dict):
        raise DecodeError("Sync payload is not an object")
    return decoded
