"""Target group names: explicit, prefixed-unique, generated; ARN suffix."""

import datetime
import itertools
import re
import threading

DEFAULT_NAME_PREFIX = "tf-"
# 14 timestamp digits + 4 fractional-second digits + 8 hex counter digits.
UNIQUE_ID_SUFFIX_LENGTH = 26
MAX_NAME_LENGTH = 32

_counter = itertools.count(1)
_counter_lock = threading.Lock()

_ARN_SUFFIX_RE = re.compile(r"arn:.*:targetgroup/(.*)")


def prefixed_unique_id(prefix: str) -> str:
    """prefix + UTC timestamp to 1/10000 s + monotonically increasing hex counter."""
    now = datetime.datetime.now(datetime.timezone.utc)
    timestamp = now.strftime("%Y%m%d%H%M%S") + f"{now.microsecond // 100:04d}"
    with _counter_lock:
        counter = next(_counter)
    return f"{prefix}{timestamp}{counter:08x}"


def resolve_name(props: dict) -> str:
    """Pick the name to create with: name, else name_prefix + unique id, else generated."""
    if props.get("name"):
        return props["name"]
    if props.get("name_prefix"):
        return prefixed_unique_id(props["name_prefix"])
    return prefixed_unique_id(DEFAULT_NAME_PREFIX)


def arn_suffix(arn: str | None) -> str:
    """Return the "targetgroup/<name>/<id>" part of a target group ARN (CloudWatch dimension)."""
    if not arn:
        return ""
    match = _ARN_SUFFIX_RE.search(arn)
    if not match:
        return ""
    return f"targetgroup/{match.group(1)}"
