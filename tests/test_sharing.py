import re

from shareplate.registry import IdentifierKind, classify_identifier
from shareplate.sharing import generate_share_code, generate_share_link


def test_share_code_shape():
    code = generate_share_code()
    assert re.fullmatch(r"[A-Z0-9]{6}", code)
    assert classify_identifier(code) == (IdentifierKind.CODE, code)


def test_share_link_shape():
    link = generate_share_link("https://share.test/")
    assert re.fullmatch(r"https://share\.test/d/[a-z0-9]{12}", link)
    assert classify_identifier(link) == (IdentifierKind.LINK, link)
