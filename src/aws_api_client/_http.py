#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from collections import Counter, OrderedDict
from collections.abc import Iterable, Iterator
from copy import deepcopy
from dataclasses import dataclass, field, replace
from functools import cached_property
from urllib.parse import urlunparse


class Field:
    """A name-value pair representing a single field in an HTTP Request or Response.

    All field names are case insensitive and case-variance must be treated as
    equivalent. Names may be normalized but should be preserved for accuracy during
    transmission.
    """

    def __init__(self, *, name: str, values: Iterable[str] | None = None):
        self.name = name
        self.values: list[str] = list(values) if values is not None else []

    def add(self, value: str) -> None:
        """Append a value to a field."""
        self.values.append(value)

    def set(self, values: list[str]) -> None:
        """Overwrite existing field values."""
        self.values = values

    def as_string(self, delimiter: str = ",") -> str:
        """Get delimited string of all values.

        If the ``Field`` has zero values, the empty string is returned. If the ``Field``
        has exactly one value, the value is returned unmodified. Multiple values that
        contain commas or double quotes are quoted and escaped before joining.
        """
        value_count = len(self.values)
        if value_count == 0:
            return ""
        if value_count == 1:
            return self.values[0]
        return delimiter.join(quote_and_escape_field_value(val) for val in self.values)

    def as_tuples(self) -> list[tuple[str, str]]:
        """Get list of ``name``, ``value`` tuples where each tuple represents one
        value."""
        return [(self.name, val) for val in self.values]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return False
        return self.name == other.name and self.values == other.values

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, value={self.values!r})"


class Fields:
    def __init__(self, initial: Iterable[Field] | None = None):
        """Collection of header entries mapped by name.

        :param initial: Initial list of ``Field`` objects. ``Field``s can also be added
        and later removed.
        """
        init_fields = list(initial) if initial is not None else []
        init_field_names = [self._normalize_field_name(fld.name) for fld in init_fields]
        fname_counter = Counter(init_field_names)
        non_unique_names = [name for name, num in fname_counter.items() if num > 1]
        if non_unique_names:
            raise ValueError(
                "Field names of the initial list of fields must be unique. The "
                "following normalized field names appear more than once: "
                f"{', '.join(non_unique_names)}."
            )
        self.entries: OrderedDict[str, Field] = OrderedDict(
            zip(init_field_names, init_fields)
        )

    def set_field(self, field: Field) -> None:
        """Alias for __setitem__ to utilize the field.name for the entry key."""
        self.__setitem__(field.name, field)

    def __setitem__(self, name: str, field: Field) -> None:
        """Set or override entry for a Field name."""
        normalized_name = self._normalize_field_name(name)
        normalized_field_name = self._normalize_field_name(field.name)
        if normalized_name != normalized_field_name:
            raise ValueError(
                f"Supplied key {name} does not match Field.name "
                f"provided: {normalized_field_name}"
            )
        self.entries[normalized_name] = field

    def get(self, key: str, default: Field | None = None) -> Field | None:
        return self[key] if key in self else default

    def get_value(self, key: str) -> str | None:
        """Return the single-line value of a field, or None if it is absent."""
        found = self.get(key)
        return found.as_string() if found is not None else None

    def __getitem__(self, name: str) -> Field:
        return self.entries[self._normalize_field_name(name)]

    def __delitem__(self, name: str) -> None:
        del self.entries[self._normalize_field_name(name)]

    def _normalize_field_name(self, name: str) -> str:
        return name.lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fields):
            return False
        return self.entries == other.entries

    def __iter__(self) -> Iterator[Field]:
        yield from self.entries.values()

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"Fields({self.entries})"

    def __contains__(self, key: str) -> bool:
        return self._normalize_field_name(key) in self.entries


def tuples_to_fields(tuples: Iterable[tuple[str, str]]) -> Fields:
    """Convert name/value pairs into ``Fields``, merging repeated names."""
    fields = Fields()
    for name, value in tuples:
        if name in fields:
            fields[name].add(value)
        else:
            fields.set_field(Field(name=name, values=[value]))
    return fields


@dataclass(kw_only=True, frozen=True)
class URI:
    """Universal Resource Identifier, target location for an :py:class:`AWSRequest`.

    ``path`` and ``query`` hold the text placed on the wire.
    """

    scheme: str = "https"
    """For example ``http`` or ``https``."""

    host: str
    """The hostname, for example ``sns.us-east-1.amazonaws.com``."""

    port: int | None = None
    """An explicit port number."""

    path: str | None = None
    """Path component of the URI."""

    query: str | None = None
    """Query component of the URI as string."""

    @property
    def netloc(self) -> str:
        """Construct netloc string in format ``{host}:{port}``."""
        return self._netloc

    # cached_property does NOT behave like property, it actually allows for setting.
    # Therefore we need a layer of indirection.
    @cached_property
    def _netloc(self) -> str:
        if self.port is not None:
            return f"{self.host}:{self.port}"
        return self.host

    def build(self) -> str:
        """Construct URI string representation.

        Returns a string of the form ``{scheme}://{host}:{port}{path}?{query}``
        """
        components = (
            self.scheme,
            self.netloc,
            self.path or "/",
            "",  # params
            self.query or "",
            "",  # fragment
        )
        return urlunparse(components)


class AWSRequest:
    """An HTTP request ready to be signed and sent."""

    def __init__(
        self,
        *,
        destination: URI,
        method: str,
        body: bytes | None,
        fields: Fields,
    ):
        self.destination = destination
        self.method = method
        self.body = body
        self.fields = fields

    def with_destination(self, **changes: object) -> AWSRequest:
        """Return a copy of the request with parts of the destination replaced."""
        new_request = deepcopy(self)
        new_request.destination = replace(self.destination, **changes)  # type: ignore
        return new_request

    def __deepcopy__(self, memo: dict[int, AWSRequest] | None = None) -> AWSRequest:
        if memo is None:
            memo = {}

        if id(self) in memo:
            return memo[id(self)]

        # the destination and the body are immutable and don't need to be copied
        new_instance = self.__class__(
            destination=self.destination,
            body=self.body,
            method=self.method,
            fields=deepcopy(self.fields, memo),
        )
        memo[id(self)] = new_instance
        return new_instance

    def __repr__(self) -> str:
        return (
            f"AWSRequest(method={self.method!r}, destination={self.destination!r}, "
            f"fields={self.fields!r})"
        )


@dataclass(kw_only=True)
class HTTPResponse:
    """Basic implementation of :py:class:`.interfaces.http.HTTPResponse`."""

    status: int
    """The 3 digit response status code (1xx, 2xx, 3xx, 4xx, 5xx)."""

    fields: Fields
    """HTTP header fields."""

    body: bytes = field(repr=False, default=b"")
    """The response payload."""

    reason: str | None = None
    """Optional string provided by the server explaining the status."""


def quote_and_escape_field_value(value: str) -> str:
    """Escapes and quotes a single :class:`Field` value if necessary.

    See :func:`Field.as_string` for quoting and escaping logic.
    """
    chars_to_quote = (",", '"')
    if any(char in chars_to_quote for char in value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    else:
        return value
