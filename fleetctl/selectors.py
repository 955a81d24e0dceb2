"""Label selectors: validated construction, query rendering and client-side matching."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Tuple

from .errors import MalformedSelector

IN = "in"
NOT_IN = "notin"
EQUALS = "="
NOT_EQUALS = "!="
EXISTS = "exists"
DOES_NOT_EXIST = "!exists"

_SET_OPERATORS = {IN, NOT_IN}
_VALUE_OPERATORS = {EQUALS, NOT_EQUALS}
_PRESENCE_OPERATORS = {EXISTS, DOES_NOT_EXIST}

_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")


def _validate_key(key: str) -> None:
    prefix, _, name = key.rpartition("/")
    if "/" in key and (not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN_RE.match(prefix)):
        raise MalformedSelector(f"invalid label key prefix in {key!r}")
    if not name or len(name) > 63 or not _NAME_RE.match(name):
        raise MalformedSelector(f"invalid label key {key!r}")


def _validate_value(value: str) -> None:
    if len(value) > 63 or not _VALUE_RE.match(value):
        raise MalformedSelector(f"invalid label value {value!r}")


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: Tuple[str, ...] = ()

    @classmethod
    def new(cls, key: str, operator: str, values: Iterable[str] = ()) -> "Requirement":
        values = tuple(sorted(set(values)))
        _validate_key(key)
        if operator in _SET_OPERATORS:
            if not values:
                raise MalformedSelector(f"operator {operator!r} on {key!r} needs at least one value")
        elif operator in _VALUE_OPERATORS:
            if len(values) != 1:
                raise MalformedSelector(f"operator {operator!r} on {key!r} needs exactly one value")
        elif operator in _PRESENCE_OPERATORS:
            if values:
                raise MalformedSelector(f"operator {operator!r} on {key!r} takes no values")
        else:
            raise MalformedSelector(f"unknown selector operator {operator!r}")
        for value in values:
            _validate_value(value)
        return cls(key=key, operator=operator, values=values)

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator == IN:
            return present and labels[self.key] in self.values
        if self.operator == NOT_IN:
            return not present or labels[self.key] not in self.values
        if self.operator == EQUALS:
            return present and labels[self.key] == self.values[0]
        if self.operator == NOT_EQUALS:
            return not present or labels[self.key] != self.values[0]
        if self.operator == EXISTS:
            return present
        return not present

    def __str__(self) -> str:
        if self.operator in _SET_OPERATORS:
            return f"{self.key} {self.operator} ({','.join(self.values)})"
        if self.operator in _VALUE_OPERATORS:
            return f"{self.key}{self.operator}{self.values[0]}"
        if self.operator == EXISTS:
            return self.key
        return f"!{self.key}"


@dataclass(frozen=True)
class LabelSelector:
    requirements: Tuple[Requirement, ...] = field(default_factory=tuple)

    def add(self, requirement: Requirement) -> "LabelSelector":
        return LabelSelector(self.requirements + (requirement,))

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(r.matches(labels) for r in self.requirements)

    def is_empty(self) -> bool:
        return not self.requirements

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)


def label_in(key: str, values: Iterable[str]) -> LabelSelector:
    """Selector for ``key in (values...)``."""
    return LabelSelector().add(Requirement.new(key, IN, values))
