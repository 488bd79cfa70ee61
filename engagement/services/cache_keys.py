"""Deterministic cache keys.

Layout::

    user-activity:<subject_id>:<namespace>[:<tag>]

``tag`` is the base64 of ``name=value`` pairs joined by ``&``, sorted by
name, with None-valued fields dropped.  No surviving fields means no tag
segment.  Every key for a subject starts with ``prefix_for(subject_id)``,
so one prefix match clears both the activity and the metrics namespace.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping

from engagement.core.errors import ValidationError

ROOT_NAMESPACE = "user-activity"

# ":" delimits key segments; the rest are Redis glob metacharacters.
_FORBIDDEN_SUBJECT_CHARS = frozenset(":*?[]\\")


def validate_subject_id(subject_id: str) -> str:
    if not subject_id or not subject_id.strip():
        raise ValidationError("subject id must be non-empty")
    bad = _FORBIDDEN_SUBJECT_CHARS.intersection(subject_id)
    if bad:
        raise ValidationError(
            f"subject id {subject_id!r} contains reserved characters {sorted(bad)}"
        )
    return subject_id


class CacheKeyCodec:
    def __init__(self, root: str = ROOT_NAMESPACE) -> None:
        self._root = root

    def derive(
        self,
        namespace: str,
        subject_id: str,
        filter_params: Mapping[str, object] | None = None,
    ) -> str:
        key = f"{self.prefix_for(subject_id)}{namespace}"
        tag = self._encode_tag(filter_params or {})
        if tag:
            key += f":{tag}"
        return key

    def prefix_for(self, subject_id: str, namespace: str | None = None) -> str:
        """Strict prefix of every key ``derive`` yields for this subject.

        With ``namespace`` the prefix narrows to that namespace only.
        """
        validate_subject_id(subject_id)
        prefix = f"{self._root}:{subject_id}:"
        if namespace is not None:
            prefix += namespace
        return prefix

    def pattern_for(self, subject_id: str) -> str:
        return f"{self.prefix_for(subject_id)}*"

    @staticmethod
    def _encode_tag(filter_params: Mapping[str, object]) -> str:
        entries = sorted(
            ((name, value) for name, value in filter_params.items() if value is not None),
            key=lambda item: item[0].encode("utf-8"),
        )
        if not entries:
            return ""
        joined = "&".join(f"{name}={_stringify(value)}" for name, value in entries)
        return base64.b64encode(joined.encode("utf-8")).decode("ascii")


def _stringify(value: object) -> str:
    # str-valued enums render as their value, not "Class.MEMBER"
    enum_value = getattr(value, "value", None)
    if isinstance(enum_value, str):
        return enum_value
    return str(value)
