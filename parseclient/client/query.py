import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Type, Union

from parseclient.core.classes import ParseGeoPoint
from parseclient.core.exceptions import ObjectNotFound
from parseclient.core.types import HTTPMethod
from parseclient.client.client import ParseClient, get_client
from parseclient.client.codec import encode
from parseclient.client.objects import ParseObject
from parseclient.client.transport import RequestOptions

logger = logging.getLogger(__name__)

_REGEX_SPECIAL = re.compile(r"[.*+?^${}()|\[\]\\]")


def quote_regex(text: str) -> str:
    """Escape regex metacharacters so ``text`` matches literally."""
    return _REGEX_SPECIAL.sub(lambda m: "\\" + m.group(0), text)


class ParseQuery:
    """
    Builds and runs queries against one class.

    Builder methods return the query so calls can be chained. Operator
    constraints on a field accumulate; ``where_equal_to`` replaces whatever
    constraint the field had.

    Usage:
        query = (
            ParseQuery("GameScore")
            .where_equal_to("playerName", "Dan")
            .where_greater_than("score", 1000)
            .order_by_descending("score")
            .limit(10)
        )
        scores = await query.find()
    """

    def __init__(
        self,
        class_name: Union[str, Type[ParseObject]],
        client: Optional[ParseClient] = None,
    ):
        if isinstance(class_name, type) and issubclass(class_name, ParseObject):
            class_name = class_name.parse_class_name
        self.class_name = class_name
        self._client = client
        self._where: Dict[str, Any] = {}
        self._include: List[str] = []
        self._keys: List[str] = []
        self._order: List[str] = []
        self._limit: Optional[int] = None
        self._skip: Optional[int] = None

    @property
    def client(self) -> ParseClient:
        return get_client(self._client)

    # -- Constraints --

    def add_condition(self, key: str, condition: str, value: Any) -> "ParseQuery":
        current = self._where.get(key)
        if not isinstance(current, dict) or "__type" in current:
            current = {}
            self._where[key] = current
        current[condition] = encode(value)
        return self

    def where_equal_to(self, key: str, value: Any) -> "ParseQuery":
        self._where[key] = encode(value)
        return self

    def where_not_equal_to(self, key: str, value: Any) -> "ParseQuery":
        return self.add_condition(key, "$ne", value)

    def where_less_than(self, key: str, value: Any) -> "ParseQuery":
        return self.add_condition(key, "$lt", value)

    def where_less_than_or_equal_to(self, key: str, value: Any) -> "ParseQuery":
        return self.add_condition(key, "$lte", value)

    def where_greater_than(self, key: str, value: Any) -> "ParseQuery":
        return self.add_condition(key, "$gt", value)

    def where_greater_than_or_equal_to(self, key: str, value: Any) -> "ParseQuery":
        return self.add_condition(key, "$gte", value)

    def where_contained_in(self, key: str, values: Iterable[Any]) -> "ParseQuery":
        return self.add_condition(key, "$in", list(values))

    def where_not_contained_in(self, key: str, values: Iterable[Any]) -> "ParseQuery":
        return self.add_condition(key, "$nin", list(values))

    def where_contains_all(self, key: str, values: Iterable[Any]) -> "ParseQuery":
        return self.add_condition(key, "$all", list(values))

    def where_exists(self, key: str) -> "ParseQuery":
        return self.add_condition(key, "$exists", True)

    def where_does_not_exist(self, key: str) -> "ParseQuery":
        return self.add_condition(key, "$exists", False)

    def where_matches(self, key: str, regex: str, modifiers: Optional[str] = None) -> "ParseQuery":
        self.add_condition(key, "$regex", regex)
        if modifiers:
            self.add_condition(key, "$options", modifiers)
        return self

    def where_starts_with(self, key: str, prefix: str) -> "ParseQuery":
        return self.where_matches(key, "^" + quote_regex(prefix))

    def where_ends_with(self, key: str, suffix: str) -> "ParseQuery":
        return self.where_matches(key, quote_regex(suffix) + "$")

    def where_contains(self, key: str, substring: str) -> "ParseQuery":
        return self.where_matches(key, quote_regex(substring))

    def where_near(self, key: str, point: ParseGeoPoint) -> "ParseQuery":
        return self.add_condition(key, "$nearSphere", point)

    def where_within_kilometers(
        self, key: str, point: ParseGeoPoint, max_distance: float
    ) -> "ParseQuery":
        self.add_condition(key, "$nearSphere", point)
        return self.add_condition(key, "$maxDistanceInKilometers", max_distance)

    def where_within_miles(
        self, key: str, point: ParseGeoPoint, max_distance: float
    ) -> "ParseQuery":
        self.add_condition(key, "$nearSphere", point)
        return self.add_condition(key, "$maxDistanceInMiles", max_distance)

    def where_within_geo_box(
        self, key: str, southwest: ParseGeoPoint, northeast: ParseGeoPoint
    ) -> "ParseQuery":
        return self.add_condition(key, "$within", {"$box": [southwest, northeast]})

    def where_related_to(self, parent: ParseObject, key: str) -> "ParseQuery":
        """Match objects in relation ``key`` of ``parent``."""
        self._where["$relatedTo"] = {"object": parent.to_pointer(), "key": key}
        return self

    # -- Shape --

    def include(self, key: str) -> "ParseQuery":
        if key not in self._include:
            self._include.append(key)
        return self

    def include_all(self, keys: Iterable[str]) -> "ParseQuery":
        for key in keys:
            self.include(key)
        return self

    def select(self, key: str) -> "ParseQuery":
        if key not in self._keys:
            self._keys.append(key)
        return self

    def select_all(self, keys: Iterable[str]) -> "ParseQuery":
        for key in keys:
            self.select(key)
        return self

    def order_by_ascending(self, key: str) -> "ParseQuery":
        self._order.append(key)
        return self

    def order_by_descending(self, key: str) -> "ParseQuery":
        self._order.append("-" + key)
        return self

    def limit(self, value: int) -> "ParseQuery":
        self._limit = value
        return self

    def skip(self, value: int) -> "ParseQuery":
        self._skip = value
        return self

    @property
    def where(self) -> Dict[str, Any]:
        return self._where

    def build_parameters(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self._where:
            params["where"] = self._where
        if self._include:
            params["include"] = ",".join(self._include)
        if self._keys:
            params["keys"] = ",".join(self._keys)
        if self._order:
            params["order"] = ",".join(self._order)
        if self._limit is not None:
            params["limit"] = self._limit
        if self._skip is not None:
            params["skip"] = self._skip
        return params

    # -- Execution --

    async def find(self, options: Optional[RequestOptions] = None) -> List[ParseObject]:
        return await self._find(self.build_parameters(), options)

    async def _find(self, params: Dict[str, Any], options: Optional[RequestOptions]) -> List[ParseObject]:
        response = await self.client.request(
            HTTPMethod.GET, f"classes/{self.class_name}", data=params, options=options
        )
        results = response.data.get("results") or []
        return [
            ParseObject.from_json(self.class_name, item, client=self._client)
            for item in results
        ]

    async def first(self, options: Optional[RequestOptions] = None) -> Optional[ParseObject]:
        params = self.build_parameters()
        params["limit"] = 1
        results = await self._find(params, options)
        return results[0] if results else None

    async def count(self, options: Optional[RequestOptions] = None) -> int:
        params = self.build_parameters()
        params["count"] = 1
        params["limit"] = 0
        response = await self.client.request(
            HTTPMethod.GET, f"classes/{self.class_name}", data=params, options=options
        )
        return int(response.data.get("count") or 0)

    async def get(
        self, object_id: str, options: Optional[RequestOptions] = None
    ) -> Optional[ParseObject]:
        """Fetch one object by id, or None when the server has no such object."""
        params: Dict[str, Any] = {}
        if self._include:
            params["include"] = ",".join(self._include)
        if self._keys:
            params["keys"] = ",".join(self._keys)
        try:
            response = await self.client.request(
                HTTPMethod.GET,
                f"classes/{self.class_name}/{object_id}",
                data=params or None,
                options=options,
            )
        except ObjectNotFound:
            logger.debug("%s %s not found", self.class_name, object_id)
            return None
        return ParseObject.from_json(self.class_name, response.data, client=self._client)

    def __repr__(self):
        return f"<ParseQuery {self.class_name}: {self._where!r}>"
