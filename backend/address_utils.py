# address_utils.py
from decimal import Decimal, ROUND_DOWN
from typing import List, Optional, Tuple

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32M_CONST = 0x2BC830A3

# Pactus human-readable parts
MAINNET_HRP = "pc"
TESTNET_HRP = "tpc"

ADDRESS_TYPE_TREASURY = 0
ADDRESS_TYPE_VALIDATOR = 1
ADDRESS_TYPE_BLS_ACCOUNT = 2
ADDRESS_TYPE_ED25519_ACCOUNT = 3

TREASURY_ADDRESS = "0" * 42
ADDRESS_PAYLOAD_LEN = 20

NANO_FACTOR = Decimal("1000000000")  # 1 PAC = 1e9 NanoPAC


def _polymod(values: List[int]) -> int:
    gen = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
    chk = 1
    for v in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((top >> i) & 1) else 0
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32m_decode(text: str) -> Tuple[str, List[int]]:
    """Decode a bech32m string into (hrp, 5-bit data without checksum).

    Raises ValueError on bad characters, mixed case, bad length or checksum.
    """
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise ValueError("invalid character")
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case")
    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + 7 > len(text) or len(text) > 90:
        raise ValueError("invalid separator position or length")
    hrp = text[:pos]
    data = []
    for c in text[pos + 1:]:
        idx = BECH32_CHARSET.find(c)
        if idx < 0:
            raise ValueError(f"invalid data character {c!r}")
        data.append(idx)
    if _polymod(_hrp_expand(hrp) + data) != BECH32M_CONST:
        raise ValueError("invalid checksum")
    return hrp, data[:-6]


def convert_bits(data: List[int], from_bits: int, to_bits: int, pad: bool) -> List[int]:
    acc = 0
    bits = 0
    out: List[int] = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or (value >> from_bits):
            raise ValueError("invalid value for bit conversion")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise ValueError("invalid padding")
    return out


def parse_address(text: str, hrps: Tuple[str, ...] = (MAINNET_HRP, TESTNET_HRP)) -> Tuple[int, bytes]:
    """Parse a Pactus address string into (address_type, 20-byte payload).

    Raises ValueError if the string is not a valid address for one of `hrps`.
    """
    text = (text or "").strip()
    if text == TREASURY_ADDRESS:
        return ADDRESS_TYPE_TREASURY, bytes(ADDRESS_PAYLOAD_LEN)

    hrp, data = bech32m_decode(text)
    if hrp not in hrps:
        raise ValueError(f"unexpected hrp: {hrp}")
    if not data:
        raise ValueError("empty address data")

    addr_type = data[0]
    if addr_type not in (ADDRESS_TYPE_VALIDATOR, ADDRESS_TYPE_BLS_ACCOUNT, ADDRESS_TYPE_ED25519_ACCOUNT):
        raise ValueError(f"invalid address type: {addr_type}")

    payload = bytes(convert_bits(data[1:], 5, 8, False))
    if len(payload) != ADDRESS_PAYLOAD_LEN:
        raise ValueError(f"invalid address length: {len(payload)}")
    return addr_type, payload


def is_valid_address(text: str) -> bool:
    try:
        parse_address(text)
        return True
    except ValueError:
        return False


def encode_address(hrp: str, addr_type: int, payload: bytes) -> str:
    """Inverse of parse_address; mostly useful for building fixtures."""
    data = [addr_type] + convert_bits(list(payload), 8, 5, True)
    values = _hrp_expand(hrp) + data
    polymod = _polymod(values + [0] * 6) ^ BECH32M_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(BECH32_CHARSET[d] for d in data + checksum)


def nano_from_coin(amount: Decimal) -> int:
    # amount is PAC; round down to whole NanoPAC
    d = Decimal(str(amount))
    return int((d * NANO_FACTOR).to_integral_value(rounding=ROUND_DOWN))


def coin_from_nano(amount: Optional[int]) -> Decimal:
    return Decimal(int(amount or 0)) / NANO_FACTOR
