from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Snapshot:
    """
    One snapper snapshot as reported by `snapper --jsonout list`.

    `number` is unique only within a snapper config; `key` combines both and is
    what multi-selection tracks. Everything other than `config`/`number` is
    display-only.
    """

    config: str
    number: int
    subvolume: str = ""
    type: str = ""
    pre_number: Optional[int] = None
    post_number: Optional[int] = None
    date: str = ""
    user: str = ""
    cleanup: Optional[str] = None
    description: str = ""
    userdata: Dict[str, str] = field(default_factory=dict)
    used_space: Optional[int] = None
    default: bool = False
    active: bool = False

    @property
    def key(self) -> Tuple[str, int]:
        return (self.config, self.number)

    @property
    def status_range(self) -> Tuple[int, int]:
        """
        Range passed to `snapper status`.

        Snapshots without a recorded "pre" counterpart are compared against the
        previous number (best effort).
        """
        start = self.pre_number if self.pre_number is not None else max(0, self.number - 1)
        return (start, self.number)


def _opt_int(v: Any) -> Optional[int]:
    # bool is an int subclass; snapper never uses it for numeric fields.
    if isinstance(v, bool) or not isinstance(v, int):
        return None
    return v


def _str(v: Any) -> str:
    return v if isinstance(v, str) else ""


def snapshot_from_json(obj: Any, *, config: str) -> Optional[Snapshot]:
    """
    Build a Snapshot from one record of snapper's JSON output.

    Returns None when the record has no usable `number`.
    """
    if not isinstance(obj, dict):
        return None
    number = _opt_int(obj.get("number"))
    if number is None:
        return None

    userdata: Dict[str, str] = {}
    raw_userdata = obj.get("userdata")
    if isinstance(raw_userdata, dict):
        for k, v in raw_userdata.items():
            if isinstance(k, str) and v is not None:
                userdata[k] = v if isinstance(v, str) else str(v)

    cleanup = obj.get("cleanup")
    if not isinstance(cleanup, str) or not cleanup:
        cleanup = None

    return Snapshot(
        config=config,
        number=number,
        subvolume=_str(obj.get("subvolume")),
        type=_str(obj.get("type")),
        pre_number=_opt_int(obj.get("pre-number")),
        post_number=_opt_int(obj.get("post-number")),
        date=_str(obj.get("date")),
        user=_str(obj.get("user")),
        cleanup=cleanup,
        description=_str(obj.get("description")),
        userdata=userdata,
        used_space=_opt_int(obj.get("used-space")),
        default=obj.get("default") is True,
        active=obj.get("active") is True,
    )


def snapshot_to_json(s: Snapshot) -> Dict[str, Any]:
    return {
        "config": s.config,
        "number": s.number,
        "subvolume": s.subvolume,
        "type": s.type,
        "pre-number": s.pre_number,
        "post-number": s.post_number,
        "date": s.date,
        "user": s.user,
        "cleanup": s.cleanup,
        "description": s.description,
        "userdata": dict(s.userdata) or None,
        "used-space": s.used_space,
        "default": s.default,
        "active": s.active,
    }


# Results delivered from a background operation to the UI thread.


@dataclass(frozen=True)
class SnapshotsLoaded:
    snapshots: List[Snapshot]


@dataclass(frozen=True)
class Created:
    description: str


@dataclass(frozen=True)
class DeleteCompleted:
    success: int
    fail: int


@dataclass(frozen=True)
class Applied:
    number: int


@dataclass(frozen=True)
class StatusLoaded:
    number: int
    text: str


@dataclass(frozen=True)
class Failed:
    message: str


Outcome = Union[SnapshotsLoaded, Created, DeleteCompleted, Applied, StatusLoaded, Failed]
