from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable

from shapely.geometry.base import BaseGeometry

from tseg.core.errors import AnnotationLockedError
from tseg.core.export_spec import Region


@dataclass(eq=False)
class Annotation:
    """Annotation object in the host hierarchy.

    A locked annotation rejects geometry edits until ``unlock()`` is called.
    """

    geometry: BaseGeometry
    name: str | None = None
    classification: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    locked: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    children: list[Annotation] = field(default_factory=list, repr=False)
    parent: Annotation | None = field(default=None, repr=False)

    @property
    def region(self) -> Region:
        return Region.from_bounds(*self.geometry.bounds)

    def lock(self) -> None:
        self.locked = True

    def unlock(self) -> None:
        self.locked = False

    def set_geometry(self, geometry: BaseGeometry) -> None:
        if self.locked:
            raise AnnotationLockedError(f"Annotation {self.name or self.id} is locked")
        self.geometry = geometry

    def add_children(self, children: Iterable[Annotation]) -> None:
        for child in children:
            child.parent = self
            self.children.append(child)
