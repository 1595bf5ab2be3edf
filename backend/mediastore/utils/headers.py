import urllib.parse


def rfc5987_filename(value: str) -> str:
    # Build a robust Content-Disposition filename / filename* pair
    quoted = urllib.parse.quote(value, safe="")
    fallback = value.encode("latin-1", "ignore").decode("latin-1").replace('"', "")
    return f'filename="{fallback}"; filename*=UTF-8\'\'{quoted}'


def content_disposition(filename: str, inline: bool = False) -> str:
    disposition = "inline" if inline else "attachment"
    return f"{disposition}; {rfc5987_filename(filename)}"
