from __future__ import annotations

from dataclasses import dataclass, field

from ..db.models import Operation


@dataclass
class Definition:
    version: int = 1
    params: dict[str, str] = field(default_factory=dict)
    operations: list[Operation] = field(default_factory=list)
