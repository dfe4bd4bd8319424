import secrets
import string

SHARE_CODE_ALPHABET = string.ascii_uppercase + string.digits
SHARE_LINK_ALPHABET = string.ascii_lowercase + string.digits
SHARE_CODE_LENGTH = 6
SHARE_LINK_SUFFIX_LENGTH = 12


def _random_string(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_share_code() -> str:
    return _random_string(SHARE_CODE_ALPHABET, SHARE_CODE_LENGTH)


def generate_share_link(base_url: str) -> str:
    suffix = _random_string(SHARE_LINK_ALPHABET, SHARE_LINK_SUFFIX_LENGTH)
    return f"{base_url.rstrip('/')}/d/{suffix}"

