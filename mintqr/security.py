import hmac
import re
import secrets
import string

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
CODE_ALPHABET = string.ascii_lowercase + string.digits


def gen_code(length: int = 20) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def is_valid_address(address: str) -> bool:
    return bool(address) and ADDRESS_RE.fullmatch(address) is not None


def check_admin_token(expected: str, given: str) -> bool:
    if not expected:
        # no token configured, admin routes are open
        return True
    return hmac.compare_digest(expected.encode(), (given or "").encode())
