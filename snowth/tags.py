"""
Tag search: find metrics matching a tag query
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote_plus

from .decoding import decode_json
from .errors import DecodeError
from .rollup import Timestamp, to_epoch

ADVISORY_LIMIT_HEADER = "X-Snowth-Advisory-Limit"
RESULT_COUNT_HEADER = "X-Snowth-Search-Result-Count"


@dataclass
class FindTagsOptions:
    """Optional parameters for a tag search"""
    start: Optional[Timestamp] = None
    end: Optional[Timestamp] = None
    activity: int = 0
    latest: int = 0
    count_only: int = 0
    limit: int = 0


@dataclass(frozen=True)
class FindTagsCount:
    count: int
    estimate: bool = False


@dataclass
class FindTagsLatest:
    """Most recent values of a metric, as (timestamp, value) pairs"""
    numeric: List[Tuple[int, Optional[float]]] = field(default_factory=list)
    text: List[Tuple[int, Optional[str]]] = field(default_factory=list)
    histogram: List[Tuple[int, Optional[str]]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise DecodeError(f"Invalid latest value block {data!r}")
        return cls(
            numeric=[_latest_pair(v, float, "numeric") for v in data.get("numeric") or []],
            text=[_latest_pair(v, str, "text") for v in data.get("text") or []],
            histogram=[_latest_pair(v, str, "histogram") for v in data.get("histogram") or []],
        )


def _latest_pair(entry: Any, value_type: type, kind: str):
    if not isinstance(entry, list) or len(entry) != 2:
        raise DecodeError(f"unable to decode latest {kind} value, invalid length: {entry!r}")
    timestamp, value = entry
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        raise DecodeError(f"unable to decode latest {kind} value, invalid timestamp: {entry!r}")
    if value is None:
        return int(timestamp), None
    if value_type is float and isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(timestamp), float(value)
    if value_type is str and isinstance(value, str):
        return int(timestamp), value
    raise DecodeError(f"unable to decode latest {kind} value, invalid value: {entry!r}")


@dataclass
class FindTagsItem:
    """A metric matched by a tag search"""
    uuid: str
    metric_name: str
    type: str = ""
    account_id: int = 0
    check_tags: List[str] = field(default_factory=list)
    activity: List[List[int]] = field(default_factory=list)
    latest: Optional[FindTagsLatest] = None

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise DecodeError(f"Invalid tag search item {data!r}")
        try:
            return cls(
                uuid=data["uuid"],
                metric_name=data["metric_name"],
                type=data.get("type", ""),
                account_id=int(data.get("account_id", 0)),
                check_tags=list(data.get("check_tags") or []),
                activity=list(data.get("activity") or []),
                latest=FindTagsLatest.from_dict(data["latest"]) if data.get("latest") else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Invalid tag search item {data!r}: {e}") from e


@dataclass
class FindTagsResult:
    items: List[FindTagsItem] = field(default_factory=list)
    count: int = 0
    find_count: Optional[FindTagsCount] = None


def find_tags_path(account_id: int, query: str, options: FindTagsOptions) -> str:
    """Build the tag search path and query string"""
    path = f"/find/{account_id}/tags?query={quote_plus(query)}"
    if options.start is not None and options.end is not None:
        start, end = to_epoch(options.start), to_epoch(options.end)
        if start and end:
            path += f"&activity_start_secs={start}&activity_end_secs={end}"
    path += f"&activity={options.activity}&latest={options.latest}"
    if options.count_only:
        path += f"&count_only={options.count_only}"
    return path


def find_tags_headers(options: FindTagsOptions) -> Dict[str, str]:
    if options.limit:
        return {ADVISORY_LIMIT_HEADER: str(options.limit)}
    return {}


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def make_find_tags_decoder(count_only: bool = False):
    """Decode step for tag search responses, honouring the result count header"""

    def decode(body: bytes, headers: Optional[Mapping[str, str]] = None) -> FindTagsResult:
        data = decode_json(body, headers)
        result = FindTagsResult()
        if count_only:
            if not isinstance(data, dict) or "count" not in data:
                raise DecodeError(f"Invalid tag count response {data!r}")
            result.find_count = FindTagsCount(int(data["count"]), bool(data.get("estimate", False)))
        else:
            if not isinstance(data, list):
                raise DecodeError(f"Expected a list of tag search items, got {type(data).__name__}")
            result.items = [FindTagsItem.from_dict(item) for item in data]

        result.count = len(result.items)
        header_count = _header(headers, RESULT_COUNT_HEADER)
        if header_count and header_count.strip().isdigit():
            result.count = int(header_count)
        return result

    return decode
