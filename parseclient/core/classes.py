import math
from dataclasses import dataclass
from typing import Any, Dict, Union

from parseclient.core.exceptions import ErrorCode, ValidationError

PUBLIC_KEY = "*"
ROLE_PREFIX = "role:"

READ = "read"
WRITE = "write"

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371


class ParseACL:
    """
    Access control list of an object.

    Maps a subject ("*" for public, a user id, or "role:<name>") to the actions
    it is granted. A subject is only present while it grants something.

    Usage:
        acl = ParseACL()
        acl.set_public_read_access(True)
        acl.set_write_access(user, True)
        obj.set_acl(acl)
    """

    def __init__(self, permissions: Dict[str, Dict[str, bool]] = None):
        self._permissions: Dict[str, Dict[str, bool]] = {}
        for subject, actions in (permissions or {}).items():
            granted = {a: True for a, allowed in actions.items() if allowed is True}
            if granted:
                self._permissions[subject] = granted

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ParseACL":
        return cls({k: v for k, v in data.items() if isinstance(v, dict)})

    def to_json(self) -> Dict[str, Dict[str, bool]]:
        return {subject: dict(actions) for subject, actions in self._permissions.items()}

    @property
    def subjects(self):
        return list(self._permissions)

    # -- Per-user access --

    def set_read_access(self, subject: Union[str, Any], allowed: bool) -> None:
        self._set_access(self._subject_key(subject), READ, allowed)

    def set_write_access(self, subject: Union[str, Any], allowed: bool) -> None:
        self._set_access(self._subject_key(subject), WRITE, allowed)

    def get_read_access(self, subject: Union[str, Any]) -> bool:
        return self._get_access(self._subject_key(subject), READ)

    def get_write_access(self, subject: Union[str, Any]) -> bool:
        return self._get_access(self._subject_key(subject), WRITE)

    # -- Public access --

    def set_public_read_access(self, allowed: bool) -> None:
        self._set_access(PUBLIC_KEY, READ, allowed)

    def set_public_write_access(self, allowed: bool) -> None:
        self._set_access(PUBLIC_KEY, WRITE, allowed)

    def get_public_read_access(self) -> bool:
        return self._get_access(PUBLIC_KEY, READ)

    def get_public_write_access(self) -> bool:
        return self._get_access(PUBLIC_KEY, WRITE)

    # -- Role access --

    def set_role_read_access(self, role_name: str, allowed: bool) -> None:
        self._set_access(ROLE_PREFIX + role_name, READ, allowed)

    def set_role_write_access(self, role_name: str, allowed: bool) -> None:
        self._set_access(ROLE_PREFIX + role_name, WRITE, allowed)

    def get_role_read_access(self, role_name: str) -> bool:
        return self._get_access(ROLE_PREFIX + role_name, READ)

    def get_role_write_access(self, role_name: str) -> bool:
        return self._get_access(ROLE_PREFIX + role_name, WRITE)

    @staticmethod
    def _subject_key(subject: Union[str, Any]) -> str:
        if isinstance(subject, str):
            return subject
        object_id = getattr(subject, "object_id", None)
        if object_id is None:
            raise ValidationError(
                "Cannot grant access to an unsaved user", code=ErrorCode.INVALID_ACL
            )
        return object_id

    def _get_access(self, key: str, action: str) -> bool:
        return self._permissions.get(key, {}).get(action, False)

    def _set_access(self, key: str, action: str, allowed: bool) -> None:
        if allowed:
            self._permissions.setdefault(key, {})[action] = True
            return
        actions = self._permissions.get(key)
        if actions is None:
            return
        actions.pop(action, None)
        if not actions:
            del self._permissions[key]

    def __eq__(self, other):
        if not isinstance(other, ParseACL):
            return NotImplemented
        return self._permissions == other._permissions

    def __repr__(self):
        return f"ParseACL({self._permissions!r})"


@dataclass(frozen=True)
class ParseGeoPoint:
    """A latitude/longitude pair in degrees."""

    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError(
                f"Latitude must be within [-90.0, 90.0], got {self.latitude!r}",
                code=ErrorCode.INVALID_JSON,
            )
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError(
                f"Longitude must be within [-180.0, 180.0], got {self.longitude!r}",
                code=ErrorCode.INVALID_JSON,
            )

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ParseGeoPoint":
        return cls(float(data["latitude"]), float(data["longitude"]))

    def to_json(self) -> Dict[str, Any]:
        return {
            "__type": "GeoPoint",
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    def distance_to(self, other: "ParseGeoPoint") -> float:
        """Great-circle distance in kilometers (haversine)."""
        lat1 = math.radians(self.latitude)
        lat2 = math.radians(other.latitude)
        delta_lat = math.radians(other.latitude - self.latitude)
        delta_lon = math.radians(other.longitude - self.longitude)

        a = math.sin(delta_lat / 2) ** 2 + (
            math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
        )
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_KM * c

    def distance_to_in_miles(self, other: "ParseGeoPoint") -> float:
        return self.distance_to(other) * KM_TO_MILES
