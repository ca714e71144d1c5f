"""
CardLink Backend — vCard Content Encoder
==========================================

What:  Pure function turning a client's contact fields into vCard 3.0 text.
Why:   The .vcf file is what phones import; an unescaped comma, semicolon
       or newline in a bio or address corrupts the card for every reader.
How:   Builds content lines in a fixed order, escapes TEXT values per
       RFC 2426, folds lines longer than 75 octets, joins with CRLF.

Purity:
    No clock, no network, no randomness: identical input always yields
    byte-identical output. The photo is referenced by URI rather than
    fetched and embedded, which keeps the encoder side-effect free.
"""

from typing import Any, Iterable, List, Optional

CRLF = "\r\n"
MAX_LINE_OCTETS = 75

PHONE_TYPE = "TYPE=WORK,VOICE"
EMAIL_TYPE = "TYPE=INTERNET,WORK"

SOCIAL_PLATFORMS = ("facebook", "instagram", "x", "linkedin", "tiktok", "youtube")


def escape_text(value: str) -> str:
    """
    Escape a TEXT value: backslash first, then newlines, commas, semicolons.

    'Line 1\\nA, B; C' → 'Line 1\\\\nA\\, B\\; C'
    """
    return (
        value.replace("\\", "\\\\")
        .replace("\r\n", "\n")
        .replace("\r", "\n")
        .replace("\n", "\\n")
        .replace(",", "\\,")
        .replace(";", "\\;")
    )


def _uri(value: str) -> str:
    # URIs are not TEXT: no escaping, but a line break would end the property
    return "".join(value.split("\r\n")).replace("\n", "").replace("\r", "").strip()


def fold_line(line: str) -> str:
    """Fold a content line at 75 octets without splitting a UTF-8 sequence."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    chunks: List[str] = []
    current = ""
    limit = MAX_LINE_OCTETS
    for char in line:
        if len((current + char).encode("utf-8")) > limit:
            chunks.append(current)
            current = char
            # continuation lines spend one octet on the leading space
            limit = MAX_LINE_OCTETS - 1
        else:
            current += char
    chunks.append(current)
    return (CRLF + " ").join(chunks)


def split_name(full_name: str) -> "tuple[str, str]":
    """'Jane Van Doe' → ('Jane', 'Van Doe')."""
    tokens = (full_name or "").split()
    if not tokens:
        return "", ""
    return tokens[0], " ".join(tokens[1:])


def _field(client: Any, name: str) -> Optional[str]:
    if isinstance(client, dict):
        value = client.get(name)
    else:
        value = getattr(client, name, None)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _present(client: Any, names: Iterable[str]) -> List[str]:
    return [v for v in (_field(client, n) for n in names) if v]


def encode_vcard(client: Any) -> str:
    """
    Encode a client (ORM row, schema object or plain dict) as vCard 3.0.

    Every populated phone and email becomes its own line with a fixed
    type label; nothing is deduplicated or validated beyond presence.
    """
    full_name = _field(client, "full_name") or ""
    first, rest = split_name(full_name)

    lines: List[str] = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"FN:{escape_text(full_name)}",
        f"N:{escape_text(rest)};{escape_text(first)};;;",
    ]

    company = _field(client, "company")
    if company:
        lines.append(f"ORG:{escape_text(company)}")

    title = _field(client, "title")
    if title:
        lines.append(f"TITLE:{escape_text(title)}")

    for phone in _present(client, ("phone1", "phone2", "phone3")):
        lines.append(f"TEL;{PHONE_TYPE}:{escape_text(phone)}")

    for email in _present(client, ("email1", "email2", "email3")):
        lines.append(f"EMAIL;{EMAIL_TYPE}:{escape_text(email)}")

    address = _field(client, "address")
    if address:
        # ADR components: PO box; extended; street; locality; region; code; country
        lines.append(f"ADR;TYPE=WORK:;;{escape_text(address)};;;;")

    for website in _present(client, ("business_website", "portfolio_website")):
        lines.append(f"URL:{_uri(website)}")

    bio = _field(client, "bio")
    if bio:
        lines.append(f"NOTE:{escape_text(bio)}")

    photo_url = _field(client, "photo_url")
    if photo_url:
        lines.append(f"PHOTO;VALUE=URI:{_uri(photo_url)}")

    social_links = (
        client.get("social_links") if isinstance(client, dict)
        else getattr(client, "social_links", None)
    ) or {}
    for platform in SOCIAL_PLATFORMS:
        url = social_links.get(platform)
        if url and str(url).strip():
            lines.append(f"X-SOCIALPROFILE;TYPE={platform}:{_uri(str(url))}")

    lines.append("END:VCARD")
    return CRLF.join(fold_line(line) for line in lines) + CRLF
