"""
入住凭证生成 - token、入住码、入住链接
随机数全部来自 secrets（操作系统熵源），熵源异常直接向上抛出
"""
import re
import secrets
import string
from datetime import datetime
from typing import Optional

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_FRONTEND_URL = "http://localhost:3000"

_CODE_PLAIN = re.compile(r"^[A-Za-z0-9]{8}$")
_CODE_GROUPED = re.compile(r"^[A-Za-z0-9]{4}-[A-Za-z0-9]{4}$")
_NON_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def generate_token(num_bytes: int = 32) -> str:
    """生成十六进制 token（32 字节 = 64 个字符）"""
    if num_bytes <= 0:
        raise ValueError("num_bytes must be positive")
    return secrets.token_bytes(num_bytes).hex()


def generate_checkin_code(length: int = 8) -> str:
    """生成大写字母+数字的入住码（均匀分布，无取模偏差）"""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def format_checkin_code(raw: str) -> str:
    """ABCDEFGH -> ABCD-EFGH"""
    clean = raw.replace("-", "")
    if len(clean) != 8:
        raise ValueError("check-in code must be 8 characters")
    return f"{clean[:4]}-{clean[4:]}"


def normalize_checkin_code(code: Optional[str]) -> str:
    """转大写并去掉所有非字母数字字符"""
    return _NON_CODE_CHARS.sub("", (code or "").strip().upper())


def is_valid_checkin_code_format(code: Optional[str]) -> bool:
    """接受 ABCDEFGH 或 ABCD-EFGH"""
    if not code:
        return False
    c = code.strip()
    return bool(_CODE_PLAIN.match(c) or _CODE_GROUPED.match(c))


def build_checkin_link(frontend_url: Optional[str], token: str, use_query: bool = True) -> str:
    """构造入住链接"""
    base = (frontend_url or DEFAULT_FRONTEND_URL).rstrip("/")
    if use_query:
        return f"{base}/checkin?token={token}"
    return f"{base}/checkin/{token}"


def mask_email(email: Optional[str]) -> str:
    """john@example.com -> j**n@e******.com"""
    email = (email or "").strip()
    parts = email.split("@")
    if len(parts) != 2:
        return email
    local, domain = parts

    if len(local) > 2:
        local = local[0] + "*" * (len(local) - 2) + local[-1]
    elif len(local) == 2:
        local = local[0] + "*"

    domain_parts = domain.split(".")
    if len(domain_parts) >= 2 and len(domain_parts[0]) > 1:
        domain_parts[0] = domain_parts[0][0] + "*" * (len(domain_parts[0]) - 1)

    return local + "@" + ".".join(domain_parts)


def generate_booking_reference(now: Optional[datetime] = None) -> str:
    """预订参考号，如 BK20240115A3B7K9"""
    now = now or datetime.now()
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
    return f"BK{now.strftime('%Y%m%d')}{suffix}"


def short_token(token: Optional[str]) -> str:
    """日志中只输出 token 前 8 位"""
    return f"{(token or '')[:8]}..."
