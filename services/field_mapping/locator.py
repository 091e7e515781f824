"""
Recursive field location inside decoded JSON trees.

- get_by_path: resolve a dotted path expression ("data.list", "items.0.name",
  "items[0].name") against a tree.
- locate_field: depth-first search for the first occurrence of a field name.
- locate_field_all: same traversal, collecting every occurrence.

Both searches keep a visited set keyed by id() so trees containing reference
cycles terminate, and equal-but-distinct nodes are still visited.
"""

from typing import Any, List, Optional, Set

from .constants import PATH_TOKEN_RE
from .models import SearchResult

MISSING = object()

_KEYED = dict
_ORDERED = (list, tuple)


def _is_container(value: Any) -> bool:
    return isinstance(value, (_KEYED,) + _ORDERED)


def _join(path: List[str], key: Any) -> str:
    return ".".join(path + [str(key)])


def _children(node: Any):
    """Yield (key, child) pairs for container children, in natural order."""
    if isinstance(node, _KEYED):
        items = node.items()
    else:
        items = enumerate(node)
    for key, child in items:
        if _is_container(child):
            yield key, child


def get_by_path(tree: Any, path: str, default: Any = MISSING) -> Any:
    """
    Resolve a dotted/bracketed path expression against tree.

    A literal key equal to the whole expression takes precedence, so a key
    such as "a.b" is reachable. Numeric segments index lists and tuples.
    Returns default (MISSING unless given) when any segment is absent.
    """
    if tree is None or not path:
        return default
    if isinstance(tree, _KEYED) and path in tree:
        return tree[path]

    current = tree
    for token in PATH_TOKEN_RE.findall(path):
        if isinstance(current, _KEYED):
            if token in current:
                current = current[token]
            elif token.isdigit() and int(token) in current:
                current = current[int(token)]
            else:
                return default
        elif isinstance(current, _ORDERED):
            if not token.isdigit() or int(token) >= len(current):
                return default
            current = current[int(token)]
        else:
            return default
    return current


def locate_field(tree: Any, field_name: str) -> Optional[SearchResult]:
    """
    Find the first occurrence of field_name in tree.

    At the root, field_name is first tried as a path expression. At every
    node a direct key match wins over anything nested below it; otherwise
    children are searched depth-first in enumeration order.
    """
    if not tree or not field_name:
        return None

    direct = get_by_path(tree, field_name)
    if direct is not MISSING:
        return SearchResult(value=direct, path=field_name)

    return _locate(tree, field_name, [], set())


def _locate(node: Any, field_name: str, path: List[str], visited: Set[int]) -> Optional[SearchResult]:
    if id(node) in visited:
        return None
    visited.add(id(node))

    if isinstance(node, _KEYED) and field_name in node:
        return SearchResult(value=node[field_name], path=_join(path, field_name))

    for key, child in _children(node):
        result = _locate(child, field_name, path + [str(key)], visited)
        if result is not None:
            return result
    return None


def locate_field_all(tree: Any, field_name: str) -> List[SearchResult]:
    """
    Find every occurrence of field_name in tree, in traversal order.

    Direct matches at a level are recorded before that level's children are
    searched. The root path-expression probe contributes at most one extra
    result, skipped when a direct match already has the same path and value.
    """
    if not tree or not field_name:
        return []

    results: List[SearchResult] = []
    _locate_all(tree, field_name, [], set(), results)
    return results


def _locate_all(node: Any, field_name: str, path: List[str], visited: Set[int], results: List[SearchResult]) -> None:
    if id(node) in visited:
        return
    visited.add(id(node))

    if isinstance(node, _KEYED) and field_name in node:
        results.append(SearchResult(value=node[field_name], path=_join(path, field_name)))

    if not path:
        probed = get_by_path(node, field_name)
        if probed is not MISSING and not any(
            r.path == field_name and _same_value(r.value, probed) for r in results
        ):
            results.append(SearchResult(value=probed, path=field_name))

    for key, child in _children(node):
        _locate_all(child, field_name, path + [str(key)], visited, results)


def _same_value(a: Any, b: Any) -> bool:
    # Containers compare by identity; structural == may not terminate on cycles
    if a is b:
        return True
    if _is_container(a) or _is_container(b):
        return False
    return a == b
