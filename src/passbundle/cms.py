"""Reader for the signer info of a DER-encoded PKCS#7 SignedData.

``cryptography`` can build PKCS#7 signatures but, when loading one, only
exposes the embedded certificates. Checking a signature against detached
content needs a few more fields (the digest algorithm, the signed
attributes and the signature value), which are read here directly from
the DER structure:

    ContentInfo ::= SEQUENCE { contentType OID, [0] EXPLICIT SignedData }
    SignedData  ::= SEQUENCE { version, digestAlgorithms SET,
                               encapContentInfo, [0] certificates,
                               [1] crls, signerInfos SET }
    SignerInfo  ::= SEQUENCE { version, sid, digestAlgorithm,
                               [0] signedAttrs, signatureAlgorithm,
                               signature OCTET STRING, [1] unsignedAttrs }

Only definite-length DER is accepted.
"""

from __future__ import annotations

from dataclasses import dataclass

SEQUENCE = 0x30
SET = 0x31
INTEGER = 0x02
OCTET_STRING = 0x04
OBJECT_IDENTIFIER = 0x06
CONTEXT_0 = 0xA0

SIGNED_DATA_OID = "1.2.840.113549.1.7.2"
MESSAGE_DIGEST_OID = "1.2.840.113549.1.9.4"


@dataclass(frozen=True)
class _Element:
    tag: int
    start: int
    body: int
    end: int


@dataclass(frozen=True)
class SignerInfo:
    """Fields of the single SignerInfo in a pass signature.

    Attributes:
        issuer: DER-encoded issuer Name of the signer certificate, if the
            signer is identified by issuer and serial number
        serial_number: Serial number of the signer certificate
        digest_oid: Digest algorithm applied to the content
        signature_oid: Signature algorithm
        signed_attributes: The exact bytes covered by the signature when
            signed attributes are present (re-tagged as a SET)
        message_digest: Content digest from the signed attributes
        signature: Signature value
    """

    issuer: bytes | None
    serial_number: int | None
    digest_oid: str
    signature_oid: str
    signed_attributes: bytes | None
    message_digest: bytes | None
    signature: bytes


def _read(data: bytes, offset: int) -> _Element:
    if offset + 2 > len(data):
        raise ValueError("Truncated DER element")

    tag = data[offset]
    if tag & 0x1F == 0x1F:
        raise ValueError("High tag numbers are not supported")

    length = data[offset + 1]
    body = offset + 2
    if length & 0x80:
        count = length & 0x7F
        if count == 0:
            raise ValueError("Indefinite length encoding is not DER")
        if count > 4 or body + count > len(data):
            raise ValueError("Invalid DER length")
        length = int.from_bytes(data[body:body + count], "big")
        body += count

    end = body + length
    if end > len(data):
        raise ValueError("Truncated DER element")
    return _Element(tag, offset, body, end)


def _children(data: bytes, parent: _Element) -> list[_Element]:
    children = []
    offset = parent.body
    while offset < parent.end:
        child = _read(data, offset)
        if child.end > parent.end:
            raise ValueError("DER element overruns its parent")
        children.append(child)
        offset = child.end
    return children


def _expect(element: _Element, tag: int, what: str) -> None:
    if element.tag != tag:
        raise ValueError(f"Expected {what} (tag 0x{tag:02x}), found tag 0x{element.tag:02x}")


def decode_oid(value: bytes) -> str:
    """Decode the value bytes of an OBJECT IDENTIFIER to dotted form."""
    if not value or value[-1] & 0x80:
        raise ValueError("Malformed object identifier")

    arcs = []
    current = 0
    for byte in value:
        current = (current << 7) | (byte & 0x7F)
        if not byte & 0x80:
            arcs.append(current)
            current = 0

    first = min(arcs[0] // 40, 2)
    return ".".join(str(arc) for arc in [first, arcs[0] - 40 * first, *arcs[1:]])


def _oid(data: bytes, element: _Element) -> str:
    _expect(element, OBJECT_IDENTIFIER, "object identifier")
    return decode_oid(data[element.body:element.end])


def _algorithm(data: bytes, element: _Element) -> str:
    _expect(element, SEQUENCE, "algorithm identifier")
    return _oid(data, _children(data, element)[0])


def read_signer_info(der: bytes) -> SignerInfo:
    """Read the one SignerInfo of a PKCS#7 SignedData structure.

    Raises:
        ValueError: If the structure is malformed or has no single signer
    """
    try:
        return _read_signer_info(der)
    except IndexError as e:
        raise ValueError("Truncated PKCS#7 structure") from e


def _read_signer_info(der: bytes) -> SignerInfo:
    content_info = _read(der, 0)
    _expect(content_info, SEQUENCE, "ContentInfo")
    if content_info.end != len(der):
        raise ValueError("Trailing data after ContentInfo")

    content_type, wrapper = _children(der, content_info)[:2]
    if _oid(der, content_type) != SIGNED_DATA_OID:
        raise ValueError("Content type is not SignedData")
    _expect(wrapper, CONTEXT_0, "explicit SignedData")

    signed_data = _children(der, wrapper)[0]
    _expect(signed_data, SEQUENCE, "SignedData")

    sets = [e for e in _children(der, signed_data) if e.tag == SET]
    if len(sets) < 2:
        raise ValueError("SignedData has no signer infos")
    signer_infos = _children(der, sets[-1])
    if len(signer_infos) != 1:
        raise ValueError(f"Expected one signer, found {len(signer_infos)}")

    fields = _children(der, signer_infos[0])
    sid = fields[1]
    digest_oid = _algorithm(der, fields[2])

    rest = fields[3:]
    attributes = None
    if rest[0].tag == CONTEXT_0:
        attributes, rest = rest[0], rest[1:]
    signature_oid = _algorithm(der, rest[0])
    _expect(rest[1], OCTET_STRING, "signature value")
    signature = der[rest[1].body:rest[1].end]

    issuer = serial_number = None
    if sid.tag == SEQUENCE:
        name, number = _children(der, sid)[:2]
        _expect(number, INTEGER, "serial number")
        issuer = der[name.start:name.end]
        serial_number = int.from_bytes(der[number.body:number.end], "big", signed=True)

    signed_attributes = message_digest = None
    if attributes is not None:
        # The signature covers the attributes encoded as a SET OF
        signed_attributes = bytes([SET]) + der[attributes.start + 1:attributes.end]
        for attribute in _children(der, attributes):
            attr_type, values = _children(der, attribute)[:2]
            if _oid(der, attr_type) == MESSAGE_DIGEST_OID:
                value = _children(der, values)[0]
                _expect(value, OCTET_STRING, "message digest")
                message_digest = der[value.body:value.end]

    return SignerInfo(
        issuer=issuer,
        serial_number=serial_number,
        digest_oid=digest_oid,
        signature_oid=signature_oid,
        signed_attributes=signed_attributes,
        message_digest=message_digest,
        signature=signature,
    )
