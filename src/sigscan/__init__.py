"""
sigscan - array-of-bytes signature compiler and scanner

Compiles textual byte signatures such as ``"48 8B ?? ?? 89"`` into an
immutable :class:`Signature` and finds the first place a signature matches
inside a caller supplied buffer.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import mmap
import string
import typing

__version__ = "0.3.0"

logger = logging.getLogger(__name__)

Buffer = typing.Union[bytes, bytearray, memoryview, mmap.mmap, typing.Sequence[int]]


class SignatureError(ValueError):
    """Base class for every error raised by this module."""


class ParseError(SignatureError):
    """Signature text could not be compiled."""


class InvalidLength(ParseError):
    """Signature text, with whitespace removed, has an odd length."""

    def __init__(self, length: int):
        self.length = length
        super().__init__(
            f"signature length (excluding whitespace) must be divisible by 2, got "
            f"{length}; prepend bytes with 0 if necessary and write wildcards as "
            f"?? instead of a single ?"
        )


class InvalidString(ParseError):
    """A two character group is neither a wildcard nor a hex byte."""

    def __init__(self, group: str):
        self.group = group
        super().__init__(f"invalid signature byte: {group!r}")


class UnanchoredSignature(SignatureError):
    """Raised when scanning with a signature that has no concrete byte."""

    def __init__(self, signature: str):
        self.signature = signature
        super().__init__(
            f"signature {signature!r} has no concrete byte to anchor a scan on"
        )


class ByteKind(enum.Enum):
    """Mask tag for one signature position."""

    CONCRETE = "x"
    WILDCARD = "?"


class SignatureByte(typing.NamedTuple):
    """Container representing a single byte in a signature.

    The ``value`` attribute holds the byte value and ``is_wildcard`` indicates
    whether this byte should be treated as a wildcard in comparisons and output.
    """

    value: int
    is_wildcard: bool


@dataclasses.dataclass(slots=True, frozen=True)
class AnchorAt:
    """The first concrete byte of a signature sits at ``index``."""

    index: int


@dataclasses.dataclass(slots=True, frozen=True)
class NoAnchor:
    """The signature is made of wildcards only."""


Anchor = typing.Union[AnchorAt, NoAnchor]

_HEX_SET = frozenset(string.hexdigits)
_ASCII_UPPER = str.maketrans(string.ascii_lowercase, string.ascii_uppercase)


def _strip(text: str) -> str:
    return "".join(text.split())


def _pairs(stripped: str) -> list[str]:
    return [stripped[i : i + 2] for i in range(0, len(stripped), 2)]


def _checked_pairs(text: str) -> list[str]:
    stripped = _strip(text)
    if len(stripped) % 2 != 0:
        raise InvalidLength(len(stripped))
    return _pairs(stripped)


def parse(text: str) -> tuple[bytes, tuple[ByteKind, ...]]:
    """Split signature text into its byte pattern and mask.

    Whitespace anywhere in ``text`` is ignored. Each remaining pair of
    characters is one byte: a pair containing ``?`` is a wildcard (also
    ``"A?"`` and ``"?A"``, which wildcard the whole byte), anything else must
    be two hex digits.

    Parameters
    ----------
    text : str
        Signature text, e.g. ``"48 8B ?? C4"`` or ``"488B??C4"``.

    Returns
    -------
    tuple of (bytes, tuple of ByteKind)
        The pattern, with ``0`` at wildcard positions, and the parallel mask.

    Raises
    ------
    InvalidLength
        The text without whitespace has an odd number of characters.
    InvalidString
        A pair is neither a wildcard nor hexadecimal.
    """
    pattern = bytearray()
    mask: list[ByteKind] = []
    for group in _checked_pairs(text):
        if "?" in group:
            pattern.append(0)
            mask.append(ByteKind.WILDCARD)
            continue
        if not all(c in _HEX_SET for c in group):
            raise InvalidString(group)
        pattern.append(int(group, 16))
        mask.append(ByteKind.CONCRETE)
    return bytes(pattern), tuple(mask)


def render(signature: typing.Union[str, "Signature"]) -> str:
    """Return the canonical form: pairs separated by single spaces, ASCII
    letters uppercased.

    A compiled :class:`Signature` renders to its stored ``sig``. Raw text is
    regrouped without checking its hex content, so it only raises
    :class:`InvalidLength`.
    """
    if isinstance(signature, Signature):
        return signature.sig
    return " ".join(_checked_pairs(signature)).translate(_ASCII_UPPER)


class SignatureType(enum.Enum):
    """Output styles accepted by ``format(signature, spec)``."""

    IDA = "ida"
    x64Dbg = "x64dbg"
    Mask = "mask"
    BitMask = "bitmask"


def _derive(
    mask: tuple[ByteKind, ...]
) -> tuple[tuple[int, ...], int | None, int | None]:
    """Return ``(matching_indices, first_byte, first_wildcard)`` for ``mask``."""
    matching = tuple(i for i, kind in enumerate(mask) if kind is ByteKind.CONCRETE)
    first_wildcard = next(
        (i for i, kind in enumerate(mask) if kind is ByteKind.WILDCARD), None
    )
    return matching, (matching[0] if matching else None), first_wildcard


@dataclasses.dataclass(slots=True, frozen=True)
class Signature:
    """
    A compiled, immutable byte signature.

    Build one with :meth:`from_text` (or the module level :func:`compile`).
    Direct construction is checked: the derived fields must agree with
    ``mask`` and wildcard positions must hold ``0``. Instances are never
    modified afterwards and can be shared between any number of scans and
    threads.
    """

    pattern: bytes
    mask: tuple[ByteKind, ...]
    matching_indices: tuple[int, ...]
    first_byte: int | None
    first_wildcard: int | None
    offset: int
    sig: str

    def __post_init__(self) -> None:
        if len(self.pattern) != len(self.mask):
            raise SignatureError(
                f"pattern has {len(self.pattern)} bytes but mask has {len(self.mask)}"
            )
        derived = _derive(self.mask)
        if derived != (self.matching_indices, self.first_byte, self.first_wildcard):
            raise SignatureError(
                f"matching_indices/first_byte/first_wildcard do not agree with the "
                f"mask, expected {derived}"
            )
        wildcards = (
            i for i, kind in enumerate(self.mask) if kind is ByteKind.WILDCARD
        )
        if any(self.pattern[i] for i in wildcards):
            raise SignatureError("wildcard positions of pattern must be 0")

    @classmethod
    def from_text(cls, text: str, offset: int = 0) -> "Signature":
        """Compile ``text``; ``offset`` is added to every reported match."""
        pattern, mask = parse(text)
        matching, first_byte, first_wildcard = _derive(mask)
        signature = cls(
            pattern=pattern,
            mask=mask,
            matching_indices=matching,
            first_byte=first_byte,
            first_wildcard=first_wildcard,
            offset=offset,
            sig=render(text),
        )
        logger.debug(
            "compiled %r: length=%d first_byte=%s offset=%d",
            signature.sig,
            signature.length,
            first_byte,
            offset,
        )
        return signature

    @property
    def length(self) -> int:
        return len(self.pattern)

    @property
    def anchor(self) -> Anchor:
        """Where a scan anchors its search, or :class:`NoAnchor`."""
        if self.first_byte is None:
            return NoAnchor()
        return AnchorAt(self.first_byte)

    def __len__(self) -> int:
        return self.length

    def __iter__(self) -> typing.Iterator[SignatureByte]:
        for value, kind in zip(self.pattern, self.mask):
            yield SignatureByte(value, kind is ByteKind.WILDCARD)

    def __str__(self) -> str:
        return self.sig

    def _hex(self, wildcard: str) -> str:
        return " ".join(
            wildcard if kind is ByteKind.WILDCARD else f"{value:02X}"
            for value, kind in zip(self.pattern, self.mask)
        )

    def __format__(self, format_spec: str) -> str:
        """
        Render the signature in one of the :class:`SignatureType` styles.

        Supported format_spec values (case-insensitive):
            - '' (default): the canonical ``sig``
            - 'ida': "55 8B ? EC"
            - 'x64dbg': "55 8B ?? EC"
            - 'mask': "\\x55\\x8B\\x00\\xEC xx?x"
            - 'bitmask': "0x55, 0x8B, 0x00, 0xEC 0b1011"
        """
        if not format_spec:
            return self.sig
        try:
            style = SignatureType(format_spec.lower())
        except ValueError:
            raise ValueError(
                f"Unknown format code '{format_spec}' for object of type 'Signature'"
            ) from None
        match style:
            case SignatureType.IDA:
                return self._hex("?")
            case SignatureType.x64Dbg:
                return self._hex("??")
            case SignatureType.Mask:
                data = "".join(f"\\x{value:02X}" for value in self.pattern)
                return f"{data} {''.join(kind.value for kind in self.mask)}"
            case SignatureType.BitMask:
                # bit i is set when byte i is concrete
                bits = sum(1 << i for i in self.matching_indices)
                data = ", ".join(f"0x{value:02X}" for value in self.pattern)
                return f"{data} 0b{bin(bits)[2:].zfill(self.length)}"


compile = Signature.from_text


def _searchable(buffer: Buffer) -> typing.Union[bytes, bytearray, mmap.mmap]:
    if isinstance(buffer, (bytes, bytearray, mmap.mmap)):
        return buffer
    return bytes(buffer)


def scan(buffer: Buffer, signature: Signature) -> int | None:
    """Find the first position in ``buffer`` where ``signature`` matches.

    The first concrete byte of the signature is located with ``find`` and
    only then are the remaining concrete positions compared, so the scan is
    close to linear when that byte is rare in ``buffer``.

    Parameters
    ----------
    buffer : bytes-like
        Data to search. ``bytes``, ``bytearray`` and ``mmap`` objects are
        searched in place, anything else is copied with ``bytes()`` first.
    signature : Signature
        A compiled signature with at least one concrete byte.

    Returns
    -------
    int or None
        Start of the leftmost match plus ``signature.offset``, or ``None``
        when the signature does not occur in ``buffer``.

    Raises
    ------
    UnanchoredSignature
        ``signature`` consists of wildcards only.
    """
    match signature.anchor:
        case AnchorAt(index=anchor):
            pass
        case _:
            raise UnanchoredSignature(signature.sig)

    data = _searchable(buffer)
    size = len(data)
    length = signature.length
    if size < length:
        logger.debug("buffer of %d bytes is shorter than %r", size, signature.sig)
        return None

    pattern = signature.pattern
    indices = signature.matching_indices
    needle = pattern[anchor : anchor + 1]
    # anchor hits past this bound would push the window beyond the buffer
    end = size - length + anchor + 1
    cursor = anchor
    while True:
        hit = data.find(needle, cursor, end)
        if hit < 0:
            logger.debug("%r not found in %d bytes", signature.sig, size)
            return None
        start = hit - anchor
        if all(data[start + k] == pattern[k] for k in indices):
            logger.debug("%r matched at %#x", signature.sig, start)
            return start + signature.offset
        cursor = hit + 1


__all__ = [
    "Anchor",
    "AnchorAt",
    "ByteKind",
    "InvalidLength",
    "InvalidString",
    "NoAnchor",
    "ParseError",
    "Signature",
    "SignatureByte",
    "SignatureError",
    "SignatureType",
    "UnanchoredSignature",
    "compile",
    "parse",
    "render",
    "scan",
]
