"""Cookieのマージ

Cookieは名前→値のマップとして扱い、出現順に左から畳み込む。
同名は後勝ち。Set-Cookieヘッダは先頭の name=value だけを使い、path / secure などの属性は捨てる。
Cookieヘッダ形式（"a=1; b=2"）は全ペアを使う。どちらの形式かは呼び出し側が選ぶ。
"""
from functools import reduce
from typing import Callable, Iterable, Optional

BASELINE_COOKIES = "employee_language=en; __bd_fedee=1"
SESSION_COOKIE_NAME = "sid"


def _pairs(segments: Iterable[str]) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for segment in segments:
        name, sep, value = segment.strip().partition("=")
        if sep and name.strip() and value.strip():
            pairs[name.strip()] = value.strip()
    return pairs


def parse_set_cookie(header: Optional[str]) -> dict[str, str]:
    """Set-Cookie 1行から name=value を取り出す（属性は捨てる）"""
    if not header:
        return {}
    return _pairs([header.split(";", 1)[0]])


def parse_cookie_header(header: Optional[str]) -> dict[str, str]:
    """"a=1; b=2" 形式のCookieヘッダ値を名前→値に分解する"""
    if not header:
        return {}
    return _pairs(header.split(";"))


def _folder(parse: Callable[[Optional[str]], dict[str, str]]):
    def _fold(jar: dict[str, str], header: Optional[str]) -> dict[str, str]:
        merged = dict(jar)
        merged.update(parse(header))
        return merged
    return _fold


def merge_cookie_map(set_cookies: Iterable[Optional[str]], base: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Set-Cookieヘッダ群をベースのマップに左から畳み込む"""
    return reduce(_folder(parse_set_cookie), set_cookies, dict(base or {}))


def merge_cookie_header_map(cookie_strings: Iterable[Optional[str]], base: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Cookieヘッダ形式の文字列群をベースのマップに左から畳み込む"""
    return reduce(_folder(parse_cookie_header), cookie_strings, dict(base or {}))


def merge_cookies(*cookie_strings: Optional[str]) -> str:
    """複数のCookieヘッダ形式の文字列をマージしてCookieヘッダ値を返す"""
    return format_cookie_header(merge_cookie_header_map(cookie_strings))


def format_cookie_header(jar: dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in jar.items())


def extract_session_id(set_cookies: Iterable[Optional[str]]) -> Optional[str]:
    """Set-Cookie群からセッションID(sid)を取り出す。なければNone"""
    return merge_cookie_map(set_cookies).get(SESSION_COOKIE_NAME)
