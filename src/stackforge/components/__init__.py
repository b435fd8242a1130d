"""Component base classes and the default component provider."""

from .compilable import CompilableComponent, Library, MakeComponent
from .component import Component, ComponentMetadata, FileReference, License, SourceReference
from .provider import ComponentProvider, ComponentReference

__all__ = [
    "CompilableComponent",
    "Component",
    "ComponentMetadata",
    "ComponentProvider",
    "ComponentReference",
    "FileReference",
    "Library",
    "License",
    "MakeComponent",
    "SourceReference",
]
