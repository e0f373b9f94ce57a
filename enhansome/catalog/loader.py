"""Decoders for registry documents."""

from __future__ import annotations

import msgspec

from .errors import RegistryParseError
from .models import RegistryDocument

_DECODER = msgspec.json.Decoder(RegistryDocument)


def decode_registry_document(payload: bytes | str) -> RegistryDocument:
    """Decode and validate one registry document.

    Parameters
    ----------
    payload : bytes | str
        Raw ``data.json`` contents.

    Returns
    -------
    RegistryDocument
        The validated document.

    Raises
    ------
    RegistryParseError
        If the payload is not JSON or does not match the document model.

    """
    try:
        return _DECODER.decode(payload)
    except msgspec.ValidationError as exc:
        raise RegistryParseError.schema_mismatch(exc) from exc
    except msgspec.DecodeError as exc:
        raise RegistryParseError.invalid_json(exc) from exc
