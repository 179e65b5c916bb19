"""
Module metadata reported by the Go tool chain.

Parses the JSON object streams printed by 'go list -m -json' and
'go list -deps -json=Module' and resolves 'replace' directives, so that a
replaced module and its replacement share one canonical descriptor.
"""

import json
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Mapping, Optional, Set

from .dependency import Identifier
from .error_handling import MalformedInputError, MissingModuleError, ResolutionError

GO_PACKAGE_TYPE = "Go"

_DECODER = json.JSONDecoder()


@dataclass(frozen=True)
class ModuleInfo:
    """One module as printed by 'go list -m -json'."""

    path: str
    version: str = ""
    replace: Optional["ModuleInfo"] = None
    indirect: bool = False
    main: bool = False
    go_mod: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModuleInfo":
        if not isinstance(data, Mapping) or not isinstance(data.get("Path"), str):
            raise MalformedInputError(f"Module record without a 'Path': {data!r}")

        replacement = data.get("Replace")
        return cls(
            path=data["Path"],
            version=data.get("Version") or "",
            replace=cls.from_dict(replacement) if replacement else None,
            indirect=bool(data.get("Indirect", False)),
            main=bool(data.get("Main", False)),
            go_mod=data.get("GoMod"),
        )

    def to_id(self, manager_name: str) -> Identifier:
        """Return the identifier of this module; the main module is typed by manager."""
        return Identifier(
            type=manager_name if self.main else GO_PACKAGE_TYPE,
            namespace="",
            name=self.path,
            version=normalize_module_version(self.version),
        )


def normalize_module_version(module_version: str) -> str:
    """
    Strip the 'v' prefix and any build metadata from a module version.

    Build metadata such as '+incompatible' does not take part in version
    comparison, see https://go.dev/ref/mod#incompatible-versions.
    """
    version = module_version[1:] if module_version.startswith("v") else module_version
    return version.split("+", 1)[0]


def iter_json_objects(output: str) -> Iterator[Dict[str, Any]]:
    """Yield the objects of a stream of concatenated JSON values."""
    position = 0
    length = len(output)
    while True:
        while position < length and output[position].isspace():
            position += 1
        if position >= length:
            return

        try:
            value, position = _DECODER.raw_decode(output, position)
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"Invalid JSON in tool output: {e}") from e

        if not isinstance(value, dict):
            raise MalformedInputError(f"Expected a JSON object, got: {value!r}")
        yield value


def parse_module_infos(output: str) -> Dict[str, ModuleInfo]:
    """
    Build the module name -> canonical descriptor mapping.

    A replaced module is stored under its own path and under the path of its
    replacement, both pointing at the replacement. The replacement object
    does not carry the 'Indirect' flag, so it is copied from the original.
    Later records for the same name overwrite earlier ones.
    """
    registry: Dict[str, ModuleInfo] = {}

    for record in iter_json_objects(output):
        module_info = ModuleInfo.from_dict(record)
        if module_info.replace is not None:
            replacement = replace(module_info.replace, indirect=module_info.indirect)
            registry[module_info.path] = replacement
            registry[module_info.replace.path] = replacement
        else:
            registry[module_info.path] = module_info

    return registry


def get_main_module(registry: Mapping[str, ModuleInfo]) -> ModuleInfo:
    """Return the single module flagged as main."""
    main_modules = {info for info in registry.values() if info.main}
    if len(main_modules) != 1:
        raise ResolutionError(
            f"Expected exactly one main module, found {len(main_modules)}."
        )
    return main_modules.pop()


def get_main_module_id(registry: Mapping[str, ModuleInfo], manager_name: str) -> Identifier:
    return get_main_module(registry).to_id(manager_name)


def get_module_info(registry: Mapping[str, ModuleInfo], module_name: str) -> ModuleInfo:
    try:
        return registry[module_name]
    except KeyError:
        raise MissingModuleError(module_name) from None


def replaced_modules(registry: Mapping[str, ModuleInfo]) -> Dict[str, str]:
    """
    Map canonical module paths to the names they were registered under.

    'go mod why' and 'go list -deps' report the names from go.mod, not the
    paths of replacements (local directory replacements have no module name
    of their own), so graph node names are translated through this map.
    """
    return {
        info.path: name for name, info in registry.items() if name != info.path
    }


def parse_dep_module_names(output: str) -> Set[str]:
    """Return the module paths of the packages printed by 'go list -deps -json=Module'."""
    names = set()
    for record in iter_json_objects(output):
        module = record.get("Module")
        if isinstance(module, dict) and isinstance(module.get("Path"), str):
            names.add(module["Path"])
    return names
