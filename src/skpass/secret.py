"""
Secret body parsing.

A decrypted secret is line oriented: the first line is the password,
later lines may hold ``key: value`` pairs mixed with free text.

    s3cr3t
    username: alice
    url: https://example.org
    recovery codes follow...
"""

from __future__ import annotations

from typing import Optional


class Secret:
    """A decrypted secret with a primary value and key/value body."""

    def __init__(self, password: str = "", body: str = ""):
        self.password = password
        self.body = body

    @classmethod
    def parse(cls, data: bytes) -> "Secret":
        text = data.decode("utf-8")
        password, _, body = text.partition("\n")
        return cls(password=password, body=body)

    def to_bytes(self) -> bytes:
        if self.body:
            return f"{self.password}\n{self.body}".encode("utf-8")
        return self.password.encode("utf-8")

    def keys(self) -> list[str]:
        return [k for k, _ in self._pairs()]

    def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` (case-insensitive), or None."""
        wanted = key.lower()
        for k, v in self._pairs():
            if k.lower() == wanted:
                return v
        return None

    def set(self, key: str, value: str) -> None:
        """Replace the first ``key`` line, or append one."""
        wanted = key.lower()
        lines = self.body.splitlines()
        for idx, line in enumerate(lines):
            k, sep, _ = line.partition(":")
            if sep and k.strip().lower() == wanted:
                lines[idx] = f"{k.strip()}: {value}"
                break
        else:
            lines.append(f"{key}: {value}")
        self.body = "\n".join(lines) + "\n"

    def delete(self, key: str) -> bool:
        wanted = key.lower()
        lines = self.body.splitlines()
        kept = [
            line for line in lines
            if not (":" in line and line.split(":", 1)[0].strip().lower() == wanted)
        ]
        if len(kept) == len(lines):
            return False
        self.body = "\n".join(kept) + ("\n" if kept else "")
        return True

    def _pairs(self) -> list[tuple[str, str]]:
        pairs = []
        for line in self.body.splitlines():
            k, sep, v = line.partition(":")
            # "https://..." style lines are free text, not keys
            if not sep or not k.strip() or " " in k.strip() or v.startswith("//"):
                continue
            pairs.append((k.strip(), v.strip()))
        return pairs

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self.password == other.password and self.body == other.body

    def __repr__(self) -> str:
        return f"Secret(keys={self.keys()!r})"
