from .loader import load_definition, load_definitions, merge_definitions, validate_definition
from .models import Definition

__all__ = [
    "Definition",
    "load_definition",
    "load_definitions",
    "merge_definitions",
    "validate_definition",
]
