"""Text helpers: slugs, excerpts and keyword dedup keys."""

import hashlib
import re


def slugify(text: str, max_length: int = 200) -> str:
    """Convert text to a URL-friendly slug."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:max_length].rstrip("-")


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def extract_excerpt(content: str, max_length: int = 160) -> str:
    """Plain-text excerpt of a markdown body."""
    plain = re.sub(r"```[\s\S]*?```", "", content)  # code blocks first
    plain = re.sub(r"#{1,6}\s+", "", plain)
    plain = re.sub(r"\*\*(.*?)\*\*", r"\1", plain)
    plain = re.sub(r"\*(.*?)\*", r"\1", plain)
    plain = re.sub(r"\[(.*?)\]\(.*?\)", r"\1", plain)
    plain = re.sub(r"`(.*?)`", r"\1", plain)
    plain = re.sub(r"\s*\n\s*", " ", plain).strip()
    return truncate_text(plain, max_length)


def normalize_keyword(keyword: str) -> str:
    """Lowercase and collapse whitespace so variants dedupe together."""
    return re.sub(r"\s+", " ", keyword.strip().lower())


def keyword_hash(keyword: str, website_id: str) -> str:
    """Dedup key unique per (keyword, website)."""
    payload = f"{normalize_keyword(keyword)}:{website_id}"
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
